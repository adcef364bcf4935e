"""
Printer Status Check

Queries the configured printer directly (no API needed) and prints a
human-readable report. Exits 0 when the printer is ready, 1 otherwise.
Run from project root: python scripts/check_printer_status.py [--host IP] [--port 9100]

Author: Khalil Bannouri
Version: 1.0.0
"""

import argparse
import asyncio
import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kitchen_print.core.config import get_settings
from kitchen_print.services.printer import TcpPrinterTransport
from kitchen_print.services.status_monitor import PrinterStatus, PrinterStatusMonitor


def yes_no(value, good: str, bad: str) -> str:
    if value is None:
        return "❔ unknown"
    return f"✅ {good}" if value else f"❌ {bad}"


def print_report(host: str, port: int, status: PrinterStatus) -> None:
    print("=" * 60)
    print("🖨️  PRINTER STATUS REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📡 Printer: {host}:{port}")
    print("=" * 60)

    if not status.connected:
        print(f"\n❌ Not reachable: {status.error}")
        return

    print(f"\n   Online:      {yes_no(status.online, 'online', 'offline')}")
    print(f"   Cover:       {yes_no(status.cover_closed, 'closed', 'OPEN')}")
    print(f"   Paper:       {yes_no(status.paper_present, 'loaded', 'OUT')}")
    if status.paper_near_end:
        print("   ⚠️  Paper roll nearly finished")

    raw = f"0x{status.raw_status_byte:02x}"
    if status.raw_paper_byte is not None:
        raw += f" / 0x{status.raw_paper_byte:02x}"
    print(f"\n   Raw bytes:   {raw}")
    if status.error:
        print(f"   ⚠️  {status.error}")

    print("\n" + "=" * 60)
    if status.ready:
        print("✅ READY TO PRINT")
    else:
        print("❌ NOT READY: " + "; ".join(status.problems()))
    print("=" * 60)


async def check(host: str, port: int) -> bool:
    settings = get_settings()
    monitor = PrinterStatusMonitor(
        TcpPrinterTransport(),
        timeout=settings.printer_status_timeout_ms / 1000,
        command_delay=settings.status_command_delay_ms / 1000,
    )
    status = await monitor.check_status(host, port)
    print_report(host, port, status)
    return status.ready


if __name__ == "__main__":
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Printer Status Check")
    parser.add_argument("--host", default=settings.printer_ip_address, help="Printer IP address")
    parser.add_argument("--port", type=int, default=settings.printer_port, help="Printer port")
    args = parser.parse_args()

    if not args.host:
        print("❌ PRINTER_IP_ADDRESS not configured and --host not given")
        sys.exit(1)

    sys.exit(0 if asyncio.run(check(args.host, args.port)) else 1)
