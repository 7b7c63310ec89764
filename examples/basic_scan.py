#!/usr/bin/env python3
"""Basic example: scan one headline and print the sized trade signals."""

import asyncio

from news_lag_arb import run_scan

if __name__ == "__main__":
    result = asyncio.run(run_scan("Fed cuts interest rates by 25 basis points at FOMC meeting"))
    print(f"\n{result.summary}")
    for s in result.signals:
        print(f"  {s.action} {s.side} {s.question[:60]}  edge={s.edge:+.0%}  size=${s.suggested_size:.0f}")
