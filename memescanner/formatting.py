"""
ALERT FORMATTING

Telegram HTML message builders and number/age helpers.
All user-controlled text (symbols, names, descriptions) is HTML-escaped.
"""

from datetime import datetime, timezone
from html import escape
from typing import Dict, List, Optional

from .models import FilterVerdict, MarketSnapshot, TrendingToken

SEPARATOR = "━━━━━━━━━━━━━━━━━━━━━━━━━━━━━"
MAX_MESSAGE_LENGTH = 4000


def format_currency(value: float) -> str:
    """$1.23M / $4.5k / $678"""
    if value >= 1_000_000:
        return f"${value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"${value / 1_000:.1f}k"
    return f"${value:.0f}"


def format_number(value: float) -> str:
    """1.23M / 4.56k / 7.89 (no currency sign)."""
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"{value / 1_000:.2f}k"
    return f"{value:.2f}"


def format_age(minutes: Optional[float]) -> str:
    """<1m / 12m / 2h5m"""
    if minutes is None:
        return "Unknown"
    if minutes < 1:
        return "<1m"
    if minutes < 60:
        return f"{int(minutes)}m"
    return f"{int(minutes // 60)}h{int(minutes % 60)}m"


def format_percent(value: float, digits: int = 2) -> str:
    sign = '+' if value >= 0 else ''
    return f"{sign}{value:.{digits}f}%"


def format_pair_alert(snapshot: MarketSnapshot, verdict: FilterVerdict, age_minutes: Optional[float]) -> str:
    """New pair alert for a token that passed the safety filter."""
    stats = verdict.stats
    address = escape(snapshot.token_address)

    lines = [
        "🔥 <b>NEW MEME COIN DETECTED</b>",
        SEPARATOR,
        "",
        f"<b>Token:</b> ${escape(snapshot.symbol)}",
        f"<b>Name:</b> {escape(snapshot.name)}",
        f"<b>Age:</b> {format_age(age_minutes)} ⚡",
        "<b>LP Locked:</b> ✅ YES",
        "",
        "<b>💰 Trading Stats:</b>",
        f"Price: ${snapshot.price_usd:g}",
        f"Liquidity: {format_currency(stats.liquidity)}",
        f"Volume 5m: {format_currency(stats.volume_5m)}",
        f"Volume 24h: {format_currency(stats.volume_24h)}",
    ]

    if stats.price_change != 0:
        emoji = '🚀' if stats.price_change > 50 else '📈' if stats.price_change > 0 else '📉'
        lines.append(f"Change 5m: {emoji} {format_percent(stats.price_change, 1)}")

    if verdict.security is not None:
        security = verdict.security
        lines += [
            "",
            "<b>🔐 Security:</b>",
            f"Mint Authority: {'⚠️ Enabled' if security.mint_authority_enabled else '✅ Disabled'}",
            f"Freeze Authority: {'⚠️ Enabled' if security.freeze_authority_enabled else '✅ Disabled'}",
            f"Top 10 Holders: {security.top10_holder_percent:.1f}%",
        ]

    if verdict.warnings:
        lines += ["", "<b>⚠️ Risk Warnings:</b>"]
        lines += [escape(w) for w in verdict.warnings]

    lines += [
        "",
        SEPARATOR,
        "<b>📊 Contract Address:</b>",
        f"<code>{address}</code>",
        "",
        f'🔗 <a href="{escape(snapshot.url)}">📈 View Chart</a> | '
        f'<a href="https://solscan.io/token/{address}">📋 Solscan</a>',
        "",
        "<i>⚠️ DYOR: High risk investment. Not financial advice.</i>",
    ]
    return "\n".join(lines)


def format_boost_alert(token: TrendingToken) -> str:
    symbol = escape(token.symbol or token.token_address[:8])
    lines = [
        "🚀 <b>NEW BOOSTED TOKEN</b>",
        SEPARATOR,
        "",
        f"<b>Chain:</b> {escape(token.chain_id)}",
        f"<b>Token:</b> {symbol}",
    ]
    if token.price_usd:
        lines.append(f"<b>Price:</b> ${token.price_usd:g}")
    if token.market_cap_usd:
        lines.append(f"<b>Market Cap:</b> ${format_number(token.market_cap_usd)}")
    if token.liquidity_usd:
        lines.append(f"<b>Liquidity:</b> ${format_number(token.liquidity_usd)}")
    if token.active_boosts:
        lines.append(f"<b>Active Boosts:</b> {token.active_boosts}")
        if token.boost_rank is not None:
            lines.append(f"<b>Boost Rank:</b> #{token.boost_rank}")
    if token.price_change_24h is not None:
        lines.append(f"<b>24h Change:</b> {format_percent(token.price_change_24h)}")

    lines += [
        "",
        SEPARATOR,
        "<b>📊 Contract:</b>",
        f"<code>{escape(token.token_address)}</code>",
        "",
        f'🔗 <a href="{escape(token.url)}">📈 View Chart</a>',
        "",
        "<i>⚠️ DYOR: High risk investment. Not financial advice.</i>",
    ]
    return "\n".join(lines)


def format_takeover_alert(token: TrendingToken) -> str:
    lines = [
        "🏴 <b>COMMUNITY TAKEOVER DETECTED</b>",
        SEPARATOR,
        "",
        f"<b>Chain:</b> {escape(token.chain_id)}",
        f"<b>Token:</b> {escape(token.description or token.token_address[:8])}",
    ]
    claim_date = _format_claim_date(token.claim_date)
    if claim_date:
        lines.append(f"<b>Claim Date:</b> {claim_date}")

    lines += [
        "",
        SEPARATOR,
        "<b>📊 Contract:</b>",
        f"<code>{escape(token.token_address)}</code>",
        "",
        f'🔗 <a href="{escape(token.url)}">📈 View Chart</a>',
        "",
        "<i>⚠️ Community Takeovers can be risky. DYOR!</i>",
    ]
    return "\n".join(lines)


def _format_claim_date(claim_date: Optional[str]) -> Optional[str]:
    if not claim_date:
        return None
    try:
        parsed = datetime.fromisoformat(str(claim_date).replace('Z', '+00:00'))
    except ValueError:
        return escape(str(claim_date))
    return parsed.astimezone(timezone.utc).strftime('%Y-%m-%d')


def format_startup_message(scanner_config: Dict, mode: str = "search") -> str:
    return "\n".join([
        "🤖 <b>Meme Coin Scanner Started</b>",
        "",
        f"✅ Mode: {escape(mode)}",
        "✅ All protections enabled",
        "",
        "<b>Filter Settings:</b>",
        f"Min Liquidity: {format_currency(scanner_config.get('min_liquidity', 300))}",
        f"Min Volume (5m): {format_currency(scanner_config.get('min_volume_5m', 50))}",
        f"Max Age: {scanner_config.get('max_age_minutes', 10)} minutes",
        "",
        "Waiting for new tokens...",
    ])


def format_error_message(error: str) -> str:
    return f"⚠️ <b>Scanner Error</b>\n\n{escape(error)}\n\n<i>Scanner continues running...</i>"


def split_message(message: str, max_length: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """
    Split on line boundaries into parts of at most `max_length` characters.
    A single line longer than the limit is hard-split.
    """
    if len(message) <= max_length:
        return [message]

    parts = []
    current = ""
    for line in message.split("\n"):
        while len(line) > max_length:
            if current:
                parts.append(current.strip())
                current = ""
            parts.append(line[:max_length])
            line = line[max_length:]

        if len(current) + len(line) + 1 > max_length and current:
            parts.append(current.strip())
            current = ""
        current += line + "\n"

    if current.strip():
        parts.append(current.strip())

    return parts
