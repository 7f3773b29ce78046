#!/usr/bin/env python3
"""
Run one distress scan and print the leaderboard.

Modes:
    insolvency   universe -> funnel -> VIS leaderboard (default)
    dilution     recent ATM filings -> severity leaderboard
    shelf        recent S-3/S-1 shelves -> shelf risk leaderboard
    insider      market-wide insider sales -> insider disconnect leaderboard (FMP only)
    alert        insolvency scan, then publish the top eligible name (dry run unless a publisher is wired in)

Flags:
    --force      ignore the alert cooldown
    --yfinance   use yfinance instead of FinancialModelingPrep (no offering data)

Usage:
    python scripts/run_distress_scan.py [insolvency|dilution|shelf|insider|alert] [--force] [--yfinance]
"""
import asyncio
import json
import logging
import os
import sys

sys.path.insert(0, os.getcwd())

from distress_radar.core.config import AppConfig, DEBUG
from distress_radar.orchestration.distress_scan_orchestrator import DistressScanOrchestrator
from distress_radar.services.yfinance_data_provider import YFinanceDataProvider

MODES = ('insolvency', 'dilution', 'shelf', 'insider', 'alert')


def main(argv):
    logging.basicConfig(level=logging.DEBUG if DEBUG else logging.INFO,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    mode = next((a for a in argv if not a.startswith('--')), 'insolvency')
    if mode not in MODES:
        print(f'Unknown mode {mode!r}; expected one of {", ".join(MODES)}')
        return 2

    config = AppConfig.from_env(strict='--yfinance' not in argv)
    provider = YFinanceDataProvider() if '--yfinance' in argv else None
    orchestrator = DistressScanOrchestrator(config, provider=provider)

    if mode == 'dilution':
        report = asyncio.run(orchestrator.run_dilution_leaderboard())
    elif mode == 'shelf':
        report = asyncio.run(orchestrator.run_shelf_leaderboard())
    elif mode == 'insider':
        report = asyncio.run(orchestrator.run_insider_leaderboard())
    elif mode == 'alert':
        report = asyncio.run(orchestrator.run_alert(force='--force' in argv))
    else:
        report = asyncio.run(orchestrator.run_insolvency_leaderboard())

    print(json.dumps(report.to_dict(), indent=2, default=str))
    if report.convergence_events:
        print('Convergence:', ', '.join(f'{e.symbol} ({e.intensity})' for e in report.convergence_events))
    if report.near_misses:
        print('Near misses:', ', '.join(f'{r.symbol} missing {"/".join(r.failing)}' for r in report.near_misses))
    if report.errors:
        print('Errors:', json.dumps(report.errors, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
