#!/usr/bin/env python3
"""News-lag arbitrage scanner — one-shot headline scans and the command line."""

import argparse
import asyncio
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from .config import get_config, load_config
from .errors import ValidationError
from .fair_value import estimate_fair_value
from .headline_analyzer import HeadlineClassifier
from .llm_client import LLMClient
from .market_search import MarketSearch
from .models import NewsWithMarkets, ScanResult, TradeRecommendation, VerificationReport
from .monitor import NewsMonitor, analyze_once
from .news_source import StaticNewsSource, build_news_source
from .risk_sizer import generate_trade_recommendation
from .verifier import run_verification

console = Console()

TEST_HEADLINES = [
    "Fed cuts interest rates by 25 basis points at FOMC meeting",
    "Bitcoin surges past $100,000 for the first time in history",
    "SEC approves spot Ethereum ETF applications",
    "CPI inflation comes in hot at 4.2%, above expectations",
    "Trump announces tariffs on Chinese imports",
]

SIGNIFICANT_EDGE = 0.05


def generate_summary(headline: str, signals: list[TradeRecommendation]) -> str:
    if not signals:
        return f'No significant arbitrage opportunities found for: "{headline}"'

    top = [s for s in signals if abs(s.edge) > SIGNIFICANT_EDGE]
    if not top:
        return (f"Found {len(signals)} related markets but no significant edge "
                f"(>{SIGNIFICANT_EDGE:.0%}) detected.")

    buys = sum(1 for s in top if s.edge > 0)
    sells = sum(1 for s in top if s.edge < 0)
    return (f"Found {len(top)} arbitrage opportunities: {buys} BUY signals, {sells} SELL signals. "
            f"Best opportunity: {top[0].question} with {round(top[0].edge_percent)}% edge.")


async def run_scan(headline: str, classifier: HeadlineClassifier | None = None,
                   search: MarketSearch | None = None, cfg=None) -> ScanResult:
    """Analyze one headline and size trades on the markets it moves, largest edge first."""
    cfg = cfg or get_config()
    classifier = classifier or HeadlineClassifier()
    search = search or MarketSearch(cfg)

    analysis = await classifier.classify(headline)
    quotes = await search.search(headline, limit=cfg.search_limit)

    signals = []
    for quote in quotes[:cfg.max_signals]:
        liquidity = quote.liquidity or cfg.default_liquidity
        try:
            estimate = estimate_fair_value(
                current_price=quote.yes_price,
                magnitude=analysis.magnitude,
                direction=analysis.direction,
                confidence=analysis.confidence,
                liquidity=liquidity,
                market_question=quote.question,
                headline=headline,
            )
        except ValidationError as e:
            print(f"  [warn] {quote.venue} {quote.market_id}: {e}")
            continue
        if abs(estimate.raw_edge) <= cfg.min_signal_edge:
            continue
        signals.append(generate_trade_recommendation(
            current_price=quote.yes_price,
            fair_value=estimate.raw_fair_value,
            edge=estimate.raw_edge,
            liquidity=liquidity,
            max_position_size=cfg.max_position_size,
            venue=quote.venue,
            market_id=quote.market_id,
            question=quote.question,
        ))

    signals.sort(key=lambda s: abs(s.edge), reverse=True)
    return ScanResult(
        headline=headline,
        analysis=analysis,
        timestamp=datetime.now(timezone.utc).isoformat(),
        signals=signals,
        summary=generate_summary(headline, signals),
    )


# --- Display ---------------------------------------------------------------

def edge_color(edge: float) -> str:
    if edge >= 0.15:
        return "bold green"
    if edge > 0:
        return "green"
    if edge <= -0.15:
        return "bold red"
    return "red"


def display_scan(result: ScanResult):
    a = result.analysis
    console.print(Panel(
        f"[bold]{result.headline}[/bold]\n"
        f"Category: {a.category}  |  Magnitude: {a.label} ({a.magnitude:.2f})  |  "
        f"Direction: {a.direction}  |  Confidence: {a.confidence:.0%}  |  via {a.method}",
        title="[bold]Headline Analysis[/bold]", border_style="blue",
    ))

    if result.signals:
        table = Table(title="⚡ Trade Signals", box=box.DOUBLE_EDGE, border_style="bold green")
        table.add_column("Venue")
        table.add_column("Market", max_width=50)
        table.add_column("Action", justify="center")
        table.add_column("Price", justify="right")
        table.add_column("Fair", justify="right")
        table.add_column("Edge", justify="right")
        table.add_column("Conf", justify="center")
        table.add_column("Size$", justify="right")
        table.add_column("Entry / Stop / Target", justify="right")
        for s in result.signals:
            ec = edge_color(s.edge)
            table.add_row(
                s.venue,
                s.question[:50],
                f"{s.action} {s.side}",
                f"{s.current_price:.0%}",
                f"{s.fair_value:.0%}",
                f"[{ec}]{s.edge:+.0%}[/{ec}]",
                s.confidence,
                f"${s.suggested_size:.0f}",
                f"{s.entry_limit:.2f} / {s.stop_loss:.2f} / {s.take_profit:.2f}",
            )
        console.print(table)

    console.print(f"[bold]{result.summary}[/bold]\n")


def display_news(result: NewsWithMarkets):
    news = result.news
    console.print(
        f"\n[bold red]🚨 {news.headline}[/bold red]\n"
        f"   [dim]{news.source} · {news.category} · {news.direction} · "
        f"analyzed in {result.analysis_time_ms}ms[/dim]"
    )
    if not result.affected_markets:
        console.print("   [dim]No affected markets found[/dim]")
        return

    table = Table(box=box.SIMPLE)
    table.add_column("Venue")
    table.add_column("Market", max_width=50)
    table.add_column("Price", justify="right")
    table.add_column("Fair", justify="right")
    table.add_column("Edge", justify="right")
    table.add_column("Signal", justify="center")
    table.add_column("Trade", justify="right")
    for m in result.affected_markets:
        q = m.quote
        if m.estimate is None:
            table.add_row(q.venue, q.question[:50], f"{q.yes_price:.0%}", "-", "-",
                          "[red]error[/red]", m.error[:30])
            continue
        e, r = m.estimate, m.recommendation
        ec = edge_color(e.edge)
        trade = f"{r.action} {r.side} ${r.suggested_size:.0f}" if r and r.action != "HOLD" else ""
        table.add_row(
            q.venue, q.question[:50], f"{e.current_price:.0%}", f"{e.fair_value:.0%}",
            f"[{ec}]{e.edge:+.0%}[/{ec}]", e.signal.upper(), trade,
        )
    console.print(table)


def display_report(report: VerificationReport):
    stats = report.statistics
    scanned = stats["markets_scanned"]
    console.print(Panel(
        f"Kalshi: {scanned['kalshi']}  |  Polymarket: {scanned['polymarket']}  |  "
        f"Pairs: {stats['matches_found']}  |  ✅ Safe: {stats['safe_to_trade']}  |  "
        f"⚠ Caution: {stats['proceed_with_caution']}  |  ⛔ Avoid: {stats['avoid']}  |  "
        f"🔍 Review: {stats['needs_review']}",
        title=f"[bold]Verification: {report.topic}[/bold]", border_style="green",
    ))

    if report.matched_pairs:
        table = Table(box=box.SIMPLE)
        table.add_column("Kalshi", max_width=40)
        table.add_column("Polymarket", max_width=40)
        table.add_column("Conf", justify="right")
        table.add_column("Risk", justify="center")
        table.add_column("Recommendation")
        table.add_column("Spread", justify="right")
        table.add_column("Arb", justify="center")
        for p in report.matched_pairs:
            v = p.verification
            table.add_row(
                f"{p.kalshi.market_id}\n[dim]{p.kalshi.question[:40]}[/dim]",
                f"{p.polymarket.market_id}\n[dim]{p.polymarket.question[:40]}[/dim]",
                f"{v.match_confidence:.0%}",
                v.risk_level,
                v.recommendation,
                f"{p.price_spread:.0f}¢",
                "🎯" if p.arbitrage_opportunity else "",
            )
        console.print(table)

        for p in report.matched_pairs:
            for m in p.verification.misalignments:
                console.print(f"  [yellow]{p.kalshi.market_id}[/yellow] {m.severity} {m.type}: {m.description}")

    console.print(f"\n[bold]{report.summary}[/bold]\n")


# --- Commands ----------------------------------------------------------------

def build_components(cfg, use_llm: bool):
    llm = LLMClient.from_config(cfg)
    classifier = HeadlineClassifier(llm, use_llm=use_llm or cfg.classifier == "llm")
    return llm, classifier, MarketSearch(cfg)


async def monitor_command(cfg, llm, classifier, search):
    monitor = NewsMonitor(
        news_source=build_news_source(cfg, llm),
        market_search=search,
        classifier=classifier,
        on_news=display_news,
        on_status=lambda line: console.print(f"[dim]{line}[/dim]"),
        cfg=cfg,
    )
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, monitor.stop)
    except NotImplementedError:
        pass
    await monitor.run()


async def test_command(cfg, classifier, search):
    for headline in TEST_HEADLINES:
        display_scan(await run_scan(headline, classifier, search, cfg))

    console.print("[bold cyan]🔁 Replaying test headlines through one monitor tick...[/bold cyan]")
    monitor = NewsMonitor(StaticNewsSource(TEST_HEADLINES), search, classifier,
                          on_news=display_news,
                          on_status=lambda line: console.print(f"[dim]{line}[/dim]"), cfg=cfg)
    await monitor.poll_once()
    await monitor.poll_once()


def main():
    parser = argparse.ArgumentParser(description="News-lag arbitrage scanner for Kalshi and Polymarket")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--use-llm", action="store_true", help="Classify headlines with the LLM")
    parser.add_argument("--interval", type=float, help="Monitor poll interval in seconds")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("monitor", help="Poll breaking news continuously")
    p_analyze = sub.add_parser("analyze", help="Analyze one headline")
    p_analyze.add_argument("headline")
    p_analyze.add_argument("--markets", action="store_true",
                           help="Show every affected market instead of trade signals")
    p_verify = sub.add_parser("verify", help="Verify cross-venue market pairs for a topic")
    p_verify.add_argument("topic")
    sub.add_parser("test", help="Run the sample headlines")
    args = parser.parse_args()

    cfg = load_config(args.config)
    if args.interval:
        cfg.poll_interval_seconds = args.interval
    errors = cfg.validate()
    if errors:
        for err in errors:
            print(f"Config error: {err}", file=sys.stderr)
        sys.exit(1)

    for key in cfg.missing_keys():
        console.print(f"[yellow]⚠ {key} not set — running on offline data[/yellow]")

    llm, classifier, search = build_components(cfg, args.use_llm)

    try:
        if args.command == "monitor":
            asyncio.run(monitor_command(cfg, llm, classifier, search))
        elif args.command == "analyze":
            if args.markets:
                display_news(asyncio.run(analyze_once(args.headline, classifier, search, cfg)))
            else:
                display_scan(asyncio.run(run_scan(args.headline, classifier, search, cfg)))
        elif args.command == "verify":
            display_report(asyncio.run(run_verification(args.topic, search, llm, cfg)))
        elif args.command == "test":
            asyncio.run(test_command(cfg, classifier, search))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped.[/yellow]")


if __name__ == "__main__":
    main()
