#!/usr/bin/env python3
"""
🎯 Preset Load Test Strategies
==============================
Pre-configured strategies from a gentle single round to a full capacity sweep.

Usage:
    python run_presets.py http://localhost:8000/api/products gentle
    python run_presets.py http://localhost:8000/api/products breaking-point --report json
    python run_presets.py http://localhost:8000/api/products flood --i-know-what-im-doing
"""

import asyncio
import sys
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from load_config import ConfigurationError, LoadTestConfig, configure_logging
from stress_test import ReportFormat, StressTestEngine, bind_stop_signal, generate_report, result_passed, run_strategy

console = Console()

# =============================================================================
# PRESET CONFIGURATIONS
# =============================================================================

PRESETS = {
    # -------------------------------------------------------------------------
    # SINGLE ROUNDS
    # -------------------------------------------------------------------------
    "gentle": {
        "name": "🌱 Gentle Round",
        "description": "One round of 10 simultaneous requests",
        "strategy": "round",
        "params": {"threads": 10},
    },
    "snapshot": {
        "name": "📸 Latency Snapshot",
        "description": "50 simultaneous requests with percentiles",
        "strategy": "detailed",
        "params": {"threads": 50},
    },

    # -------------------------------------------------------------------------
    # STRESS / CAPACITY
    # -------------------------------------------------------------------------
    "breaking-point": {
        "name": "💪 Breaking Point",
        "description": "Step 10 -> 200 threads until more than 10% fail",
        "strategy": "stress",
        "params": {
            "start_threads": 10,
            "max_threads": 200,
            "step": 10,
            "acceptable_fail_rate": 0.1,
        },
    },
    "capacity": {
        "name": "📊 Capacity Sweep",
        "description": "Find the width with the best throughput (10 -> 300, +20)",
        "strategy": "capacity",
        "params": {
            "initial_threads": 10,
            "max_threads": 300,
            "increment": 20,
            "throughput_threshold": 5.0,
        },
    },

    # -------------------------------------------------------------------------
    # TIME-BASED
    # -------------------------------------------------------------------------
    "endurance": {
        "name": "🏃‍♂️ Endurance",
        "description": "5 minutes at 20 requests per second",
        "strategy": "sustained",
        "params": {"duration_s": 300, "requests_per_second": 20},
    },
    "spike": {
        "name": "📈 Traffic Spike",
        "description": "20 threads, spike to 200, back to 20",
        "strategy": "peak",
        "params": {
            "normal_threads": 20,
            "peak_threads": 200,
            "normal_duration_s": 10,
            "peak_duration_s": 5,
        },
    },
    "soak": {
        "name": "💓 Soak",
        "description": "20 rounds of 25 threads, 15s apart",
        "strategy": "stability",
        "params": {"threads": 25, "iterations": 20, "interval_s": 15},
    },

    # -------------------------------------------------------------------------
    # CORRECTNESS
    # -------------------------------------------------------------------------
    "consistency": {
        "name": "🔍 Consistency",
        "description": "20 workers x 5 sequential requests must return identical bodies",
        "strategy": "safety",
        "params": {"threads": 20, "iterations": 5},
    },

    # -------------------------------------------------------------------------
    # EXTREME PRESETS (USE WITH CAUTION!)
    # -------------------------------------------------------------------------
    "flood": {
        "name": "☢️ Flood",
        "description": "Step 100 -> 2000 threads, tolerating 50% failures",
        "strategy": "stress",
        "params": {
            "start_threads": 100,
            "max_threads": 2000,
            "step": 100,
            "acceptable_fail_rate": 0.5,
        },
        "dangerous": True,
    },
    "firehose": {
        "name": "🚀 Firehose",
        "description": "1000 requests per second for 60s",
        "strategy": "sustained",
        "params": {"duration_s": 60, "requests_per_second": 1000},
        "dangerous": True,
    },
}


def print_presets():
    """Print all available presets."""
    console.print("\n[bold]Available Presets:[/bold]\n")

    categories = [
        ("Single Rounds", ["gentle", "snapshot"]),
        ("Stress/Capacity", ["breaking-point", "capacity"]),
        ("Time-Based", ["endurance", "spike", "soak"]),
        ("Correctness", ["consistency"]),
        ("☢️ EXTREME", ["flood", "firehose"]),
    ]

    for category, preset_names in categories:
        console.print(f"[bold cyan]{category}:[/bold cyan]")
        for name in preset_names:
            preset = PRESETS[name]
            danger_flag = "[red]⚠️ DANGEROUS[/red] " if preset.get("dangerous") else ""
            console.print(f"  {name:<16} {preset['name']:<22} {danger_flag}- {preset['description']}")
        console.print("")


async def run_preset(
    url: str,
    preset_name: str,
    dangerous_confirmed: bool = False,
    report_format: str = "console",
    output_path: Optional[str] = None,
) -> Optional[bool]:
    """Run a preset strategy. Returns whether it passed, or None if it did not run."""
    if preset_name not in PRESETS:
        console.print(f"[red]Unknown preset: {preset_name}[/red]")
        print_presets()
        return None

    preset = PRESETS[preset_name]

    # Safety check for dangerous presets
    if preset.get("dangerous") and not dangerous_confirmed:
        console.print(Panel(
            f"[bold red]⚠️  WARNING: {preset['name']} is DANGEROUS![/bold red]\n\n"
            f"{preset['description']}\n\n"
            f"This can overwhelm servers and trigger rate limiting or IP bans.\n\n"
            f"[yellow]Only use on systems you own or have permission to test![/yellow]",
            title="⚠️ Dangerous Preset",
            border_style="red"
        ))
        if not Confirm.ask("Do you want to proceed?"):
            console.print("[dim]Cancelled.[/dim]")
            return None

    console.print(Panel(
        f"[bold]{preset['name']}[/bold]\n\n{preset['description']}",
        title=f"Running Preset: {preset_name}",
        border_style="blue"
    ))

    config = LoadTestConfig.for_url(url)
    engine = StressTestEngine(config)
    bind_stop_signal(engine)
    result = await run_strategy(engine, preset["strategy"], preset["params"])

    report = generate_report(
        result,
        config,
        preset["strategy"],
        format=ReportFormat(report_format),
        output_path=output_path,
        test_name=f"{preset['name']} - {preset_name}",
    )
    if report and not output_path:
        print(report)
    return result_passed(result)


def main():
    if len(sys.argv) < 3 or sys.argv[1] in ["--help", "-h", "help"]:
        console.print("[bold]Usage:[/bold] python run_presets.py <URL> <PRESET> [--i-know-what-im-doing] [--report console|json] [--output FILE]")
        print_presets()
        return

    url = sys.argv[1]
    preset = sys.argv[2]
    dangerous_confirmed = "--i-know-what-im-doing" in sys.argv

    report_format = "console"
    output_path = None
    for i, arg in enumerate(sys.argv):
        if arg == "--report" and i + 1 < len(sys.argv):
            report_format = sys.argv[i + 1]
        if arg == "--output" and i + 1 < len(sys.argv):
            output_path = sys.argv[i + 1]

    configure_logging("--verbose" in sys.argv)
    try:
        passed = asyncio.run(run_preset(url, preset, dangerous_confirmed, report_format, output_path))
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(2)
    sys.exit(0 if passed else 1)


if __name__ == "__main__":
    main()
