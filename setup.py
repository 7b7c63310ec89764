from setuptools import setup, find_packages

setup(
    name="news-lag-arb",
    version="0.1.0",
    packages=find_packages(include=["news_lag_arb", "news_lag_arb.*"]),
    install_requires=[
        "feedparser",
        "httpx",
        "rich",
        "rapidfuzz",
        "pyyaml",
        "python-dotenv",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "news-lag-arb=news_lag_arb.scanner:main",
        ],
    },
    python_requires=">=3.10",
)
