"""Markdown rendering of an AnalysisResult. Formatting only."""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .pipeline import AnalysisResult
from .records import ClassifiedDay, DayType, Direction

logger = logging.getLogger(__name__)

TYPE_NOTES = {
    DayType.NORMAL: '',
    DayType.AWAY: 'Away period (eco mode, then normal setpoint)',
    DayType.HIGH_LOAD: '~12 kW for ~2 hrs each session',
}


def _fmt(value: Optional[float], digits: int = 1) -> str:
    return 'N/A' if value is None else f"{value:.{digits}f}"


class MarkdownReportGenerator:
    """Generate the human-readable analysis report."""

    def __init__(self, result: AnalysisResult):
        self.result = result
        self.config = result.config

    def render(self) -> str:
        sections = [
            self._header(),
            self._warnings(),
            self._executive_summary(),
            self._classification(),
            self._baseline(),
            self._model(),
            self._day_by_day(),
            self._anomalies(),
            self._confounding_load(),
            self._benchmark(),
            self._root_causes(),
            self._recommendations(),
            self._footer(),
        ]
        return ''.join(s for s in sections if s)

    def write(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render())
        logger.info(f"Report written to {path}")
        return path

    # -------------------------------------------------------------------------

    def _header(self) -> str:
        r, c = self.result, self.config
        md = f"# HVAC Energy Analysis: {c.start_date:%b %Y} - {c.end_date:%b %Y}\n\n"
        md += f"**Generated:** {r.generated_at:%Y-%m-%d}\n"
        md += f"**Period:** {c.start_date} to {c.end_date} ({len(r.days)} days)\n"
        md += "**Data Sources:** Home battery/solar telemetry, Open-Meteo Archive API\n\n"
        return md

    def _warnings(self) -> str:
        if not self.result.warnings:
            return ''
        md = '## Data Quality Warnings\n\n'
        md += 'The following inputs were unavailable or degraded; treat affected figures with caution.\n\n'
        for warning in self.result.warnings:
            md += f"- {warning}\n"
        return md + '\n'

    def _executive_summary(self) -> str:
        r = self.result
        s = r.summary
        bench = r.benchmark
        g = r.model.global_model

        md = '## Executive Summary\n\n'
        md += f"Over {s.day_count} days, the home consumed **{s.total_home_kwh:.0f} kWh** total "
        md += f"(avg {s.avg_home_kwh:.1f} kWh/day). "
        md += f"Solar produced {s.total_solar_kwh:.0f} kWh and grid imported {s.total_grid_import_kwh:.0f} kWh.\n\n"

        md += f"The regression model ({g.name}) explains **{g.r_squared * 100:.1f}%** of daily consumption variance. "
        temp_coeff, hdd_coeff = g.coefficient('tempMin'), g.coefficient('hdd')
        if temp_coeff is not None:
            md += f"Each 1°F drop in daily minimum temperature adds approximately **{abs(temp_coeff):.2f} kWh** to daily consumption.\n\n"
        elif hdd_coeff is not None:
            md += f"Each additional heating degree day adds approximately **{hdd_coeff:.2f} kWh** to daily consumption.\n\n"

        if bench.meets_target:
            md += f"The house is performing **within Passive House standards** "
            md += f"({bench.annual_heating_kbtu_per_sqft:.1f} kBtu/ft²/year vs ≤{bench.target_kbtu_per_sqft} target). "
        else:
            md += f"The house heating intensity is **{bench.annual_heating_kbtu_per_sqft:.1f} kBtu/ft²/year** "
            md += f"(Passive House target: ≤{bench.target_kbtu_per_sqft}). "
        ratio = bench.standard_to_measured_ratio
        if ratio is not None:
            md += f"A standard code-compliant build would use an estimated **{ratio * 100:.0f}%** "
            md += "of this house's heating energy in the same conditions."
        return md + '\n\n'

    def _classification(self) -> str:
        md = '## Day Classification\n\n'
        md += '| Type | Count | Avg kWh/day | Notes |\n'
        md += '|------|-------|-------------|-------|\n'
        s = self.result.summary
        for day_type in DayType:
            md += f"| {day_type.value} | {s.type_counts[day_type]} | {s.type_avg_kwh[day_type]:.1f} | {TYPE_NOTES[day_type]} |\n"
        return md + '\n'

    @staticmethod
    def _weather_table(days: Sequence[ClassifiedDay]) -> str:
        md = '| Date | Home kWh | Temp Min (°F) | Temp Mean (°F) | Wind Max (mph) |\n'
        md += '|------|----------|---------------|----------------|----------------|\n'
        for d in days:
            md += f"| {d.date} | {d.home_kwh:.1f} | {_fmt(d.temp_min)} | {_fmt(d.temp_mean)} | {_fmt(d.wind_max)} |\n"
        return md + '\n'

    def _baseline(self) -> str:
        bench = self.result.benchmark
        house = self.config.house
        md = '## Away-Period Baseline Analysis\n\n'
        md += f"**Eco-mode baseload:** {bench.baseload_kwh:.1f} kWh/day ({bench.baseload_method})\n\n"
        md += 'This represents the non-HVAC load: refrigerator, freezer, ERV fan, standby electronics, battery losses.\n\n'
        if bench.switchover_date:
            md += f"**Thermostat switchover detected:** {bench.switchover_date}\n"
            md += (f"The thermostat was switched from eco mode ({house.thermostat_away_f:.0f}°F) back to "
                   f"{house.thermostat_normal_f:.0f}°F during the away period.\n\n")
        if bench.low_setpoint_days:
            md += f"### Eco-Mode Days ({house.thermostat_away_f:.0f}°F setpoint)\n\n"
            md += self._weather_table(bench.low_setpoint_days)
        if bench.normal_setpoint_days:
            md += f"### Heated Away Days ({house.thermostat_normal_f:.0f}°F setpoint, unoccupied)\n\n"
            md += self._weather_table(bench.normal_setpoint_days)
        return md

    def _model(self) -> str:
        model = self.result.model
        g = model.global_model
        md = '## Temperature-Consumption Model\n\n### Global Model\n\n'
        md += f"- **Selected:** {g.name} ({g.n_samples} days)\n"
        md += f"- **R²:** {g.r_squared:.3f}\n"
        md += f"- **Features:** {', '.join(g.feature_names)}\n"
        md += f"- **Coefficients:** {', '.join(f'{k}={v:.3f}' for k, v in g.coefficient_map().items())}\n\n"

        md += '| Candidate | R² |\n|-----------|----|\n'
        for candidate in model.candidates:
            marker = ' **(selected)**' if candidate is g else ''
            md += f"| {candidate.name}{marker} | {candidate.r_squared:.3f} |\n"
        md += '\n'

        md += '### Segmented Models\n\n'
        md += '| Segment | Days | R² | tempMin Coeff | windMax Coeff | Intercept |\n'
        md += '|---------|------|----|---------------|---------------|-----------|\n'
        for seg in model.segments:
            if seg.fitted:
                m = seg.model
                md += (f"| {seg.name} | {len(seg.days)} | {m.r_squared:.3f} | {m.coefficients[0]:.3f} | "
                       f"{m.coefficients[1]:.3f} | {m.intercept:.2f} |\n")
            else:
                md += f"| {seg.name} | {len(seg.days)} | - | - | - | {seg.fallback_kwh:.2f} (mean) |\n"
        md += '\n'

        if self.result.prediction_curve:
            md += '### Predicted Consumption by Minimum Temperature\n\n'
            md += '| Temp Min (°F) | Predicted kWh |\n|---------------|---------------|\n'
            for temp, predicted in self.result.prediction_curve:
                md += f"| {temp:.0f} | {predicted:.1f} |\n"
            md += '\n'
        return md

    def _day_by_day(self) -> str:
        r = self.result
        anomaly_dates = {a.date: a for a in r.anomalies}
        md = '## Day-by-Day Data\n\n'
        md += '| Date | Type | Home kWh | Adjusted kWh | Temp Min °F | Temp Mean °F | Wind Max | Expected | Residual | Flags |\n'
        md += '|------|------|----------|--------------|-------------|--------------|----------|----------|----------|-------|\n'
        for d in r.days:
            m = r.modeled_for(d.date)
            flags = []
            if d.type is DayType.HIGH_LOAD:
                flags.append('high-load')
            if d.type is DayType.AWAY:
                flags.append('away')
            if d.date in anomaly_dates:
                flags.append(anomaly_dates[d.date].direction.value)
            if d.detected:
                flags.append('detected')
            md += (f"| {d.date} | {d.type.value} | {d.home_kwh:.1f} | {d.adjusted_kwh:.1f} | "
                   f"{_fmt(d.temp_min)} | {_fmt(d.temp_mean)} | {_fmt(d.wind_max, 0)} | "
                   f"{_fmt(m.expected_kwh) if m else '-'} | {_fmt(m.residual_kwh) if m else '-'} | {' '.join(flags)} |\n")
        return md + '\n'

    def _anomalies(self) -> str:
        r = self.result
        stats = r.residual_stats
        md = '## Anomaly Analysis\n\n'
        md += (f"**Detection threshold:** ±{r.anomaly_threshold_kwh:.1f} kWh "
               f"({self.config.anomaly_sigma}σ, where σ={stats.stddev:.1f} kWh)\n\n")
        if r.anomalies:
            md += '### Anomalous Days\n\n'
            md += '| Date | Direction | Actual kWh | Expected kWh | Residual | Z-Score | Suspected Cause |\n'
            md += '|------|-----------|------------|--------------|----------|---------|-----------------|\n'
            for a in sorted(r.anomalies, key=lambda a: a.date):
                md += (f"| {a.date} | {a.direction.value} | {a.actual_kwh:.1f} | {a.expected_kwh:.1f} | "
                       f"{a.residual_kwh:.1f} | {a.z_score:.2f} | {a.suspected_cause} |\n")
            md += '\n'
        else:
            md += 'No anomalous days detected.\n\n'

        if r.drilldowns:
            md += '### Hourly Drill-Downs\n\n'
            for dd in r.drilldowns:
                a = dd.anomaly
                md += f"#### {dd.date} ({a.direction.value}, z={a.z_score:.2f})\n\n"
                md += f"Actual: {a.actual_kwh:.1f} kWh | Expected: {a.expected_kwh:.1f} kWh | Residual: {a.residual_kwh:.1f} kWh\n\n"
                if dd.patterns:
                    md += f"**Patterns detected:** {', '.join(dd.patterns)}\n\n"
                md += '| Hour | Home Wh | Solar Wh |\n|------|---------|----------|\n'
                for h in dd.hourly:
                    if h.interval_count:
                        md += f"| {h.hour:02d}:00 | {h.home_wh:.0f} | {h.solar_wh:.0f} |\n"
                md += '\n'
        return md

    def _confounding_load(self) -> str:
        days = self.result.days_of_type(DayType.HIGH_LOAD)
        md = '## High-Load (Sauna) Impact\n\n'
        if not days:
            return md + 'No high-load sessions detected in the analysis period.\n\n'
        md += '| Date | Total kWh | Est. Load kWh | Adjusted kWh | Temp Min °F | Source |\n'
        md += '|------|-----------|---------------|--------------|-------------|--------|\n'
        for d in days:
            source = 'sub-daily signature' if d.detected else 'known history'
            md += (f"| {d.date} | {d.home_kwh:.1f} | {d.confounding_kwh:.1f} | {d.adjusted_kwh:.1f} | "
                   f"{_fmt(d.temp_min)} | {source} |\n")
        s = self.result.summary
        md += f"\n**Total high-load energy:** {s.high_load_kwh:.1f} kWh across {s.high_load_sessions} sessions\n"
        md += (f"**Estimated cost:** ${s.high_load_cost:.2f} at "
               f"${self.config.electricity_rate:.2f}/kWh\n\n")
        return md

    def _benchmark(self) -> str:
        b = self.result.benchmark
        p, s = b.passive, b.standard
        md = '## Passive House Benchmark\n\n### Measured vs Theoretical Comparison\n\n'
        md += '| Metric | Your House (measured) | Passive House Target | Passive House (modeled) | Standard Build (modeled) |\n'
        md += '|--------|-----------------------|----------------------|-------------------------|--------------------------|\n'
        md += (f"| Heating kWh/ft²/year | {b.annual_heating_kwh_per_sqft:.2f} | ≤{b.target_kwh_per_sqft:.2f} | "
               f"{p.annual_kwh_per_sqft:.2f} | {s.annual_kwh_per_sqft:.2f} |\n")
        md += (f"| Heating kBtu/ft²/year | {b.annual_heating_kbtu_per_sqft:.2f} | ≤{b.target_kbtu_per_sqft:.2f} | "
               f"{p.annual_kbtu_per_sqft:.2f} | {s.annual_kbtu_per_sqft:.2f} |\n")
        md += (f"| Heating kWh per HDD | {b.heating_kwh_per_hdd:.3f} | - | {p.electrical_per_hdd:.3f} | "
               f"{s.electrical_per_hdd:.3f} |\n")
        md += f"| Baseload (non-HVAC) kWh/day | {b.baseload_kwh:.1f} | - | - | - |\n"
        if b.coldest_day:
            c = b.coldest_day
            md += f"| Coldest day consumption | {c.home_kwh:.1f} kWh ({c.date}, {c.temp_min:.0f}°F) | - | - | - |\n"
        md += f"\nAnnualized with {b.annual_hdd:.0f} HDD (base {self.config.hdd_base_f:.0f}°F).\n\n"

        md += '### Heat Loss Component Breakdown (kWh per HDD)\n\n'
        md += f"| Component | {p.name} ({p.ach50} ACH50) | {s.name} ({s.ach50} ACH50) |\n"
        md += '|-----------|------------------------|------------------------|\n'
        md += f"| Infiltration | {p.infiltration:.3f} | {s.infiltration:.3f} |\n"
        md += f"| Ventilation | {p.ventilation:.3f} | {s.ventilation:.3f} |\n"
        md += f"| Envelope (conduction) | {p.envelope:.3f} | {s.envelope:.3f} |\n"
        md += f"| **Total thermal load** | **{p.total:.3f}** | **{s.total:.3f}** |\n"
        md += f"| Avg COP assumed | {p.cop} | {s.cop} |\n"
        md += f"| **Electrical (after COP)** | **{p.electrical_per_hdd:.3f}** | **{s.electrical_per_hdd:.3f}** |\n\n"

        rate = self.config.electricity_rate
        md += '### Key Findings\n\n'
        md += (f"1. **Savings vs standard build:** {b.savings_vs_standard_kwh:.0f} kWh/year estimated "
               f"(${b.savings_vs_standard_cost:.0f}/year at ${rate:.2f}/kWh)\n")
        if b.meets_target:
            md += (f"2. **Passive House compliance:** YES -- {b.annual_heating_kbtu_per_sqft:.1f} kBtu/ft²/year "
                   f"is within the ≤{b.target_kbtu_per_sqft} target\n")
        else:
            md += (f"2. **Passive House compliance:** Exceeds target by {b.target_overshoot_pct:.0f}% -- likely COP degradation in "
                   f"extreme cold plus baseload uncertainty (a {b.baseload_kwh:.1f} kWh/day baseload may undercount "
                   f"always-on loads, attributing them to heating)\n")
        md += (f"3. **COP impact:** measured {b.heating_kwh_per_hdd:.3f} kWh/HDD vs modeled passive house "
               f"{p.electrical_per_hdd:.3f} kWh/HDD. ")
        ratio = b.measured_to_passive_ratio
        if ratio > 1.3:
            md += (f"The {(ratio - 1) * 100:.0f}% excess is consistent with COP degradation during cold snaps "
                   f"(effective COP ~{b.effective_cop:.1f} vs assumed {p.cop}).\n\n")
        else:
            md += 'This is close to the theoretical prediction, suggesting the envelope is performing well.\n\n'
        return md

    def _root_causes(self) -> str:
        md = '## Root Cause Ranking\n\n'
        if not self.result.root_causes:
            return md + 'Too few normal days to rank consumption drivers.\n\n'
        md += 'Factors driving day-to-day HVAC consumption variation, ranked by explanatory power:\n\n'
        md += '| Rank | Factor | Correlation with Consumption | Direction |\n'
        md += '|------|--------|------------------------------|-----------|\n'
        for rank, factor in enumerate(self.result.root_causes, start=1):
            direction = 'Colder → more consumption' if factor.correlation < 0 else 'Higher → more consumption'
            md += f"| {rank} | {factor.feature} | {abs(factor.correlation):.3f} | {direction} |\n"
        md += '\nAdditional factors not captured by weather alone:\n'
        md += '- **Thermal mass depletion:** multi-day cold snaps cause cumulative heat loss from slab and walls\n'
        md += '- **COP cliff below 5°F:** heat pump efficiency drops sharply, requiring 2x electrical input\n'
        md += '- **Defrost cycles:** more frequent below 20°F, consuming energy while providing no heating\n'
        md += (f"- **Sauna:** ~{self.config.known_high_load_estimate_kwh:.0f} kWh per session, "
               "easily mistaken for HVAC demand\n")
        md += '- **Occupancy patterns:** cooking, laundry and appliance use add 2-5 kWh/day variance\n\n'
        return md

    def _recommendations(self) -> str:
        r = self.result
        has_cold_anomaly = any(a.direction is Direction.HIGH and 'Extreme cold' in a.suspected_cause
                               for a in r.anomalies)
        has_overnight = any('overnight-ramp' in dd.patterns for dd in r.drilldowns)

        items: List[str] = []
        md = '## Recommendations\n\n### High Impact\n\n'
        items.append('**Pre-heat with solar (2-4pm):** Raise setpoint to 72°F during peak solar. Thermal mass '
                     'stores heat for overnight. Estimated savings: 2-3 kWh/night during cold snaps.')
        items.append('**Reduce ERV airflow overnight:** Switch to low or "away" mode 10pm-6am. In a tight house, '
                     'overnight air quality is fine with reduced ventilation. Savings: 1-2 kWh/night.'
                     + (' Overnight ramps were observed on anomalous days.' if has_overnight else ''))
        for i, item in enumerate(items, start=1):
            md += f"{i}. {item}\n\n"

        md += '### Moderate Impact\n\n'
        cold = ('**Lower thermostat 1-2°F on extreme cold nights:** At COP ~1.3 below 5°F, each degree costs '
                '~0.8 kWh. Wear warmer bedding instead.')
        if has_cold_anomaly:
            cold += ' Extreme-cold days were among the flagged anomalies.'
        md += f"3. {cold}\n\n"
        md += ('4. **Close thermal curtains at sunset:** Reduces window heat loss 40-50%. Open south-facing '
               'curtains at sunrise for passive solar gain.\n\n')

        md += '### Maintenance\n\n'
        md += ('5. **Verify mini-split cold-climate defrost settings:** Ensure firmware is optimized for '
               'cold-climate operation (defrost intervals, backup heat lockout).\n\n')
        md += ('6. **Clear snow/ice around outdoor units:** Critical during prolonged cold snaps. Obstructed '
               'airflow forces more frequent defrost.\n\n')
        return md

    def _footer(self) -> str:
        r = self.result
        g = r.model.global_model
        md = '---\n\n'
        md += f"*Analysis generated {r.generated_at.isoformat(timespec='seconds')}.*\n"
        md += f"*Model based on {g.n_samples} normal-HVAC days with R²={g.r_squared:.3f}.*\n"
        return md
