"""Command-line entry point: run the analysis and write the report."""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config import load_config
from .pipeline import HvacAnalysisPipeline, save_structured_results
from .report import MarkdownReportGenerator
from .results import InsufficientDataError
from .sources import (JsonDirectoryTelemetrySource, OpenMeteoWeatherSource, RawDataCache,
                      load_known_high_load_days)

logger = logging.getLogger('hvac_analysis')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='hvac-analysis',
        description='Weather-normalized HVAC consumption analysis with anomaly detection '
                    'and a passive house benchmark.',
    )
    parser.add_argument('--config', help='JSON file overlaid on the default configuration')
    parser.add_argument('--telemetry-dir', help='directory of exported <period>_<end_date>.json payloads')
    parser.add_argument('--history', help='known high-load day history (JSON)')
    parser.add_argument('--cached', action='store_true', help='replay the raw-data cache, no external calls')
    parser.add_argument('--charts', action='store_true', help='also write PNG charts')
    parser.add_argument('--verbose', '-v', action='store_true', help='debug logging')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s - %(levelname)s - %(message)s')

    config = load_config(args.config)
    telemetry, weather = None, None
    if not args.cached:
        if args.telemetry_dir:
            telemetry = JsonDirectoryTelemetrySource(args.telemetry_dir, config.timezone)
        weather = OpenMeteoWeatherSource(config.timezone)
    pipeline = HvacAnalysisPipeline(
        config,
        telemetry=telemetry,
        weather=weather,
        cache=RawDataCache(config.cache_path, config.timezone),
        known_high_load=load_known_high_load_days(args.history),
    )

    logger.info("=== HVAC Energy Analysis ===")
    try:
        result = asyncio.run(pipeline.run(use_cache=args.cached))
    except InsufficientDataError as e:
        logger.error(f"Analysis aborted: {e}")
        return 1

    output_dir = config.output_dir
    save_structured_results(result, output_dir / 'structured-results.json')
    MarkdownReportGenerator(result).write(output_dir / 'report.md')
    if args.charts:
        from .charts import save_charts
        save_charts(result, output_dir)

    g = result.model.global_model
    logger.info(f"Global model: {g.name} (R²={g.r_squared:.3f}); "
                f"{len(result.anomalies)} anomalies; "
                f"{result.benchmark.annual_heating_kbtu_per_sqft:.2f} kBtu/ft²/year")
    if result.warnings:
        logger.warning(f"{len(result.warnings)} data quality warnings; see report")
    return 0


if __name__ == '__main__':
    sys.exit(main())
