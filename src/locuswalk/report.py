from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>locuswalk {{ command }} report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>locuswalk {{ command }}</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      {% for key, value in inputs.items() %}
      <tr><th>{{ key }}</th><td><code>{{ value }}</code></td></tr>
      {% endfor %}
    </table>
  </div>
  <div class="card">
    <h3>Options</h3>
    <table>
      {% for key, value in options.items() %}
      <tr><th>{{ key }}</th><td>{{ value }}</td></tr>
      {% endfor %}
    </table>
  </div>
</div>

<h2>Counts</h2>
<table>
  {% for key, value in counts.items() %}
  <tr><th>{{ key }}</th><td>{{ value }}</td></tr>
  {% endfor %}
</table>

{% if plot %}
<h2>Plot</h2>
<div class="card">
  <img src="{{ plot }}" alt="{{ command }} plot">
</div>
{% endif %}

<h2>Outputs</h2>
<ul>
  <li><code>{{ output }}</code></li>
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<hr>
<p class="small">locuswalk {{ version }} &middot; runtime {{ "%.1f"|format(runtime_seconds) }}s</p>
</body>
</html>"""
)


def _flatten(counts: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in counts.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=name + " / "))
        else:
            flat[name] = value
    return flat


def render_report(
    *,
    outdir: str | Path,
    version: str,
    command: str,
    summary: Dict[str, Any],
    plot: Optional[str] = None,
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        command=command,
        inputs=summary.get("inputs", {}),
        options=summary.get("options", {}),
        counts=_flatten(summary.get("counts", {})),
        output=summary.get("output"),
        runtime_seconds=float(summary.get("runtime_seconds", 0.0)),
        plot=plot,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.info("Report written: %s", out_path)
    return out_path
