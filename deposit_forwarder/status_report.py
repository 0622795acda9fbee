"""
Status Report

Human readable rendering of a monitoring status snapshot.
"""

from decimal import Decimal
from typing import List

from .chain_registry import ChainRegistry
from .checkpoint_store import UNINITIALIZED


def format_amount(amount: int, decimals: int = 6) -> str:
    """Smallest-unit integer to a fixed-point string, e.g. 2500000 -> '2.500000'"""
    if decimals == 0:
        return str(amount)
    value = Decimal(amount).scaleb(-decimals)
    return f"{value:.{decimals}f}"


def format_status(statuses: List, registry: ChainRegistry) -> str:
    """
    Render WatcherStatus records

    Args:
        statuses: WatcherStatus list from MonitorSupervisor.status()
        registry: Chain registry for names and asset metadata

    Returns:
        Multi-line report
    """
    lines = ["", "📊 MONITORING STATUS", "=" * 40]

    for status in statuses:
        chain = registry.get(status.chain_id)
        if status.error:
            lines.append(f"❌ {chain.name}: Error getting status ({status.error})")
            continue

        last_checked = "-" if status.last_checked == UNINITIALIZED else str(status.last_checked)
        lines.append(f"📍 {chain.name}:")
        lines.append(f"   💰 Current Balance: {format_amount(status.balance, chain.asset_decimals)} {chain.asset_symbol}")
        lines.append(f"   📊 Last Checked Block: {last_checked}")
        lines.append(f"   🔄 Current Block: {status.current_height}")
        lines.append(f"   ⚡ Status: {'MONITORING' if status.running else 'STOPPED'} ({status.state})")
        lines.append(
            f"   📈 Forwards: {status.forwards_confirmed} confirmed, "
            f"{status.forwards_rejected} rejected, {status.forwards_transient} failed"
        )

    lines.append("=" * 40)
    return "\n".join(lines)
