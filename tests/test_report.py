"""Markdown report rendering and the command-line entry point."""

import json
import re
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from conftest import SAUNA_DAY, SPIKE_DAY
from hvac_analysis import cli
from hvac_analysis.pipeline import HvacAnalysisPipeline
from hvac_analysis.records import DayType
from hvac_analysis.report import MarkdownReportGenerator

SECTIONS = [
    '# HVAC Energy Analysis: Jan 2026 - Jan 2026',
    '## Executive Summary',
    '## Day Classification',
    '## Away-Period Baseline Analysis',
    '## Temperature-Consumption Model',
    '### Segmented Models',
    '### Predicted Consumption by Minimum Temperature',
    '## Day-by-Day Data',
    '## Anomaly Analysis',
    '## High-Load (Sauna) Impact',
    '## Passive House Benchmark',
    '### Heat Loss Component Breakdown (kWh per HDD)',
    '### Key Findings',
    '## Root Cause Ranking',
    '## Recommendations',
]


@pytest_asyncio.fixture
async def result(january_config, telemetry, weather):
    pipeline = HvacAnalysisPipeline(january_config, telemetry=telemetry, weather=weather,
                                    known_high_load={SAUNA_DAY})
    return await pipeline.run()


@pytest.mark.asyncio
async def test_report_sections_in_order(result):
    md = MarkdownReportGenerator(result).render()
    positions = [md.index(heading) for heading in SECTIONS]
    assert positions == sorted(positions)
    assert '## Data Quality Warnings' not in md or result.warnings


@pytest.mark.asyncio
async def test_report_content(result):
    md = MarkdownReportGenerator(result).render()

    assert f"| {SPIKE_DAY} | high-load |" in md
    assert 'sub-daily signature' in md
    assert 'known history' in md
    assert result.model.global_model.name in md
    assert '**(selected)**' in md
    assert f"{result.benchmark.annual_heating_kbtu_per_sqft:.2f}" in md
    assert md.rstrip().endswith(f"R²={result.model.global_model.r_squared:.3f}.*")


@pytest.mark.asyncio
async def test_report_warnings_section(result):
    result.warnings = ['Weather data unavailable (Weather archive: timed out)']
    md = MarkdownReportGenerator(result).render()
    assert md.index('## Data Quality Warnings') < md.index('## Executive Summary')
    assert '- Weather data unavailable (Weather archive: timed out)' in md


@pytest.mark.asyncio
async def test_report_write(result, tmp_path):
    path = MarkdownReportGenerator(result).write(tmp_path / 'reports' / 'report.md')
    assert path.read_text().startswith('# HVAC Energy Analysis')


def _write_config(tmp_path):
    path = tmp_path / 'config.json'
    path.write_text(json.dumps({
        'output_dir': str(tmp_path / 'out'),
        'cache_path': str(tmp_path / 'missing-cache.json'),
    }))
    return path


def test_cli_without_data_exits_with_error(tmp_path):
    code = cli.main(['--config', str(_write_config(tmp_path)), '--cached'])
    assert code == 1
    assert not (tmp_path / 'out' / 'report.md').exists()


def test_cli_parser_options():
    args = cli.build_parser().parse_args(['--telemetry-dir', 'exports', '--history', 'sauna.json',
                                          '--cached', '--charts', '-v'])
    assert args.telemetry_dir == 'exports'
    assert args.history == 'sauna.json'
    assert args.cached and args.charts and args.verbose
    assert args.config is None


@pytest.mark.asyncio
async def test_charts_written(result, tmp_path):
    from hvac_analysis.charts import save_charts

    paths = save_charts(result, tmp_path / 'charts')
    assert [p.name for p in paths] == ['temperature-response.png', 'residual-timeline.png']
    assert all(p.stat().st_size > 0 for p in paths)


@pytest.mark.asyncio
async def test_report_figures_come_from_result(result):
    md = MarkdownReportGenerator(result).render()
    s, b = result.summary, result.benchmark

    assert f"consumed **{s.total_home_kwh:.0f} kWh** total (avg {s.avg_home_kwh:.1f} kWh/day)" in md
    assert f"**Total high-load energy:** {s.high_load_kwh:.1f} kWh across {s.high_load_sessions} sessions" in md
    assert f"**Estimated cost:** ${s.high_load_cost:.2f}" in md
    assert f"${b.savings_vs_standard_cost:.0f}/year" in md
    assert f"| high-load | {s.type_counts[DayType.HIGH_LOAD]} | {s.type_avg_kwh[DayType.HIGH_LOAD]:.1f} |" in md
    assert f"±{result.anomaly_threshold_kwh:.1f} kWh" in md
    assert not re.search(r'\bnan\b', md)


def test_cli_cached_run_never_builds_sources(tmp_path, monkeypatch):
    telemetry_cls, weather_cls = MagicMock(), MagicMock()
    monkeypatch.setattr(cli, 'JsonDirectoryTelemetrySource', telemetry_cls)
    monkeypatch.setattr(cli, 'OpenMeteoWeatherSource', weather_cls)

    code = cli.main(['--config', str(_write_config(tmp_path)), '--cached', '--telemetry-dir', str(tmp_path)])

    assert code == 1
    telemetry_cls.assert_not_called()
    weather_cls.assert_not_called()
