#!/usr/bin/env python3
"""
HTTP tool surface for capacity planning.

Endpoints:
- POST /api/tools/calculate-pod-capacity: remaining pod capacity for a namespace or the cluster
- POST /api/tools/analyze-scaling-impact: what-if analysis for a deployment replica change
- GET /health: liveness probe
- GET /metrics: Prometheus-format self-monitoring

Malformed arguments answer 400; upstream failures never fail a call, they
show up as "default" entries in the result's data_quality.
"""
import logging
import time
from datetime import datetime, timezone

from flask import Flask, jsonify, Response, request

from config import setup_logging, SERVER_HOST, SERVER_PORT
from analysis.errors import InvalidInput
from orchestrator import analyze_scaling_impact, calculate_pod_capacity

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

app = Flask(__name__)
# Tests and embedders may set these to a snapshot provider / tuning dict
app.config.setdefault("SNAPSHOT_PROVIDER", None)
app.config.setdefault("TUNING", None)

# Metrics for observability
_metrics = {
    'requests_total': 0,
    'requests_by_endpoint': {},
    'errors_total': 0,
    'invalid_requests_total': 0,
    'start_time': time.time()
}

TOOLS = {
    'calculate-pod-capacity': calculate_pod_capacity,
    'analyze-scaling-impact': analyze_scaling_impact,
}


def _record_request(endpoint: str):
    """Record request metrics"""
    _metrics['requests_total'] += 1
    _metrics['requests_by_endpoint'][endpoint] = _metrics['requests_by_endpoint'].get(endpoint, 0) + 1


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


@app.route('/api/tools/<tool_name>', methods=['POST'])
def run_tool(tool_name: str):
    """Run one tool with the JSON request body as its arguments"""
    endpoint = f'/api/tools/{tool_name}'
    _record_request(endpoint)

    tool = TOOLS.get(tool_name)
    if tool is None:
        return jsonify({"status": "error", "error": f"unknown tool: {tool_name}"}), 404

    args = request.get_json(silent=True)
    if args is None:
        args = {}
    if not isinstance(args, dict):
        _metrics['invalid_requests_total'] += 1
        return jsonify({"status": "error", "error": "request body must be a JSON object"}), 400

    try:
        result = tool(args, provider=app.config.get("SNAPSHOT_PROVIDER"), tuning=app.config.get("TUNING"))
    except InvalidInput as e:
        _metrics['invalid_requests_total'] += 1
        logger.info(f"{endpoint}: invalid input: {e}")
        return jsonify({"status": "error", "error": str(e)}), 400
    except Exception as e:
        _metrics['errors_total'] += 1
        logger.exception(f"{endpoint}: tool failed: {e}")
        return jsonify({"status": "error", "error": "internal error"}), 500

    return jsonify(result)


@app.route('/health')
def health():
    """Health check endpoint for liveness probes"""
    _record_request('/health')
    return jsonify({
        "status": "healthy",
        "timestamp": _now_iso()
    })


@app.route('/metrics')
def metrics():
    """Prometheus metrics endpoint for self-monitoring"""
    _record_request('/metrics')
    uptime = time.time() - _metrics['start_time']

    # Generate Prometheus-format metrics
    lines = [
        "# HELP capacity_planner_requests_total Total number of HTTP requests",
        "# TYPE capacity_planner_requests_total counter",
        f"capacity_planner_requests_total {_metrics['requests_total']}",
        "",
        "# HELP capacity_planner_errors_total Total number of failed tool calls",
        "# TYPE capacity_planner_errors_total counter",
        f"capacity_planner_errors_total {_metrics['errors_total']}",
        "",
        "# HELP capacity_planner_invalid_requests_total Tool calls rejected for invalid input",
        "# TYPE capacity_planner_invalid_requests_total counter",
        f"capacity_planner_invalid_requests_total {_metrics['invalid_requests_total']}",
        "",
        "# HELP capacity_planner_uptime_seconds Server uptime in seconds",
        "# TYPE capacity_planner_uptime_seconds gauge",
        f"capacity_planner_uptime_seconds {uptime:.2f}",
    ]

    # Add per-endpoint metrics
    lines.append("")
    lines.append("# HELP capacity_planner_requests_by_endpoint Requests per endpoint")
    lines.append("# TYPE capacity_planner_requests_by_endpoint counter")
    for endpoint, count in _metrics['requests_by_endpoint'].items():
        lines.append(f'capacity_planner_requests_by_endpoint{{endpoint="{endpoint}"}} {count}')

    return Response('\n'.join(lines), mimetype='text/plain')


if __name__ == '__main__':
    logger.info(f"Capacity planning tools: http://{SERVER_HOST}:{SERVER_PORT}/api/tools/<tool>")
    logger.info(f"Health: http://{SERVER_HOST}:{SERVER_PORT}/health")
    logger.info(f"Metrics: http://{SERVER_HOST}:{SERVER_PORT}/metrics")
    app.run(debug=False, host=SERVER_HOST, port=SERVER_PORT)
