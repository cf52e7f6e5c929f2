"""
Flask API for Agent Pippy.

Chat and plan requests go through the dual-model debate; market data
endpoints expose the same resilient fetchers the debate uses for context.
"""
import asyncio
import logging
import os
import time
from datetime import datetime, timezone

from flask import Flask, jsonify, request

# Load environment variables from .env file if it exists
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

import config
from pippy import __version__
from pippy.aggregation.formatter import quote_breadth, sector_heatmap, sort_by_change
from pippy.data.charts import group_by_timeframe
from pippy.resilience.errors import AllSourcesUnavailable, ProviderError
from pippy.services import PippyServices, build_services
from utils import check_environment, get_env_status, setup_logging

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Built lazily so importing the module never needs API keys
_services = None


def get_services() -> PippyServices:
    """Get or create the process-wide services."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: PippyServices):
    """Replace the services (tests inject fakes here)."""
    global _services
    _services = services


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _text_field(data, *names):
    """First non-empty string among the named JSON fields, stripped."""
    for name in names:
        value = data.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _unavailable_response(e: AllSourcesUnavailable):
    logger.error(f"All AI sources unavailable: {e}")
    return jsonify({
        "error": "All AI sources are unavailable. Please try again shortly.",
        "failures": e.failures,
    }), 503


def _provider_error_response(e: ProviderError):
    logger.warning(f"Provider error: {e.reason()}")
    return jsonify({"error": e.reason(), "provider": e.provider}), 502


@app.route('/api/health')
def health_check():
    """Health check endpoint for deployment monitoring."""
    return jsonify({
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    })


@app.route('/api/env-status')
def env_status():
    status = get_env_status()
    status["aiReady"] = status["geminiReady"] and status["groqReady"]
    status["marketDataReady"] = status["finnhubReady"]
    return jsonify(status)


@app.route('/api/chat', methods=['POST'])
def chat():
    """Answer a chat message with the two-model debate."""
    data = _json_body()
    message = _text_field(data, "message")
    if not message:
        return jsonify({"error": "Message is required"}), 400

    symbol = _text_field(data, "contextSymbol", "pair") or config.DEFAULT_PAIR
    history = data.get("history") or []
    if not isinstance(history, list):
        history = []

    try:
        outcome = asyncio.run(get_services().orchestrator.answer(message, symbol, history))
    except AllSourcesUnavailable as e:
        return _unavailable_response(e)

    logger.info(f"Chat answered in {outcome.elapsed_ms}ms ({outcome.mode.value}, sources: {outcome.sources_used})")
    return jsonify(outcome.to_dict())


@app.route('/api/generate-plan', methods=['POST'])
def generate_plan():
    """Aggregate every data source and debate a trading plan."""
    data = _json_body()
    symbol = _text_field(data, "symbol", "pair")
    if not symbol:
        return jsonify({"error": "Symbol is required"}), 400
    timeframe = data.get("timeframe") or None
    if timeframe and timeframe not in config.TIMEFRAMES:
        return jsonify({"error": f"Unknown timeframe: {timeframe}"}), 400

    try:
        plan = asyncio.run(get_services().plan_generator.generate(symbol, timeframe))
    except AllSourcesUnavailable as e:
        return _unavailable_response(e)

    return jsonify(plan.to_dict())


@app.route('/api/stocks-quote/<symbol>')
def stock_quote(symbol):
    result = asyncio.run(get_services().quote_fetcher.fetch_quote(symbol))
    if not result.ok:
        return jsonify({"symbol": symbol.upper(), "error": "Quote unavailable", "reason": result.reason}), 503
    return jsonify(result.data.to_dict())


def _watchlist_quotes(pair):
    """Fetch a pair's watch-list: (watchlist, quotes, {missing symbol: reason})."""
    watchlist = config.WATCHLISTS[pair]
    results = asyncio.run(get_services().quote_fetcher.fetch_quotes(list(watchlist)))
    quotes = [r.data for r in results.values() if r.ok]
    missing = {s: r.reason for s, r in results.items() if not r.ok}
    return watchlist, quotes, missing


def _unknown_pair_response(pair):
    return jsonify({"error": f"Unknown pair: {pair}. Use one of {config.TRADING_PAIRS}"}), 400


@app.route('/api/stocks/<pair>')
def watchlist_quotes(pair):
    """Quotes for an index watch-list, sorted by percent change, with breadth."""
    pair = pair.upper()
    if pair not in config.WATCHLISTS:
        return _unknown_pair_response(pair)

    watchlist, quotes, missing = _watchlist_quotes(pair)

    stocks = []
    for quote in sort_by_change(quotes):
        item = quote.to_dict()
        item["name"] = watchlist.get(quote.symbol, quote.symbol)
        stocks.append(item)

    meta = quote_breadth(quotes)
    meta["missing"] = sorted(missing)
    meta["degraded"] = bool(missing)
    return jsonify({"pair": pair, "stocks": stocks, "meta": meta})


@app.route('/api/market-map/<pair>')
def market_map(pair):
    """Sector heatmap for an index watch-list."""
    pair = pair.upper()
    if pair not in config.WATCHLISTS:
        return _unknown_pair_response(pair)

    watchlist, quotes, missing = _watchlist_quotes(pair)
    if not quotes:
        return jsonify({"pair": pair, "error": "No quotes available", "missing": sorted(missing)}), 503

    data = sector_heatmap(quotes, names=watchlist)
    data["pair"] = pair
    data["meta"] = dict(quote_breadth(quotes), missing=sorted(missing), degraded=bool(missing))
    return jsonify(data)


@app.route('/api/news/<pair>')
def news(pair):
    limit = max(1, request.args.get("limit", default=config.NEWS_LIMIT, type=int))
    try:
        items = asyncio.run(get_services().news_service.fetch_news(pair, limit=limit))
    except ProviderError as e:
        return _provider_error_response(e)
    return jsonify({"pair": pair.upper(), "news": [item.to_dict() for item in items]})


@app.route('/api/calendar')
def calendar():
    countries = request.args.get("countries")
    country_list = [c.strip() for c in countries.split(",") if c.strip()] if countries else None
    try:
        events = asyncio.run(get_services().calendar_service.fetch_events(country_list))
    except ProviderError as e:
        return _provider_error_response(e)
    return jsonify({"events": [event.to_dict() for event in events]})


@app.route('/api/analyze-chart', methods=['POST'])
def analyze_chart():
    """Analyze the uploaded charts for a pair with the vision backend."""
    data = _json_body()
    pair = _text_field(data, "pair").upper()
    if not pair:
        return jsonify({"error": "Pair is required"}), 400
    timeframe = data.get("timeframe") or None
    if timeframe and timeframe not in config.TIMEFRAMES:
        return jsonify({"error": f"Unknown timeframe: {timeframe}"}), 400

    analyzer = get_services().chart_analyzer
    if analyzer is None:
        return jsonify({"error": "Chart analysis requires an image-capable AI backend"}), 503

    try:
        analysis = asyncio.run(analyzer.analyze(pair, timeframe))
    except ProviderError as e:
        return _provider_error_response(e)
    except OSError as e:
        logger.error(f"Could not read charts for {pair}: {e}")
        return jsonify({"error": f"Could not read charts: {e}"}), 500

    return jsonify(analysis.to_dict())


@app.route('/api/charts/<pair>')
def list_charts(pair):
    """Uploaded charts for a pair, keyed by timeframe."""
    store = get_services().chart_store
    if store is None:
        return jsonify({tf: [] for tf in config.TIMEFRAMES})
    try:
        charts = store.list_charts(pair.upper())
    except OSError as e:
        logger.error(f"Could not list charts for {pair}: {e}")
        return jsonify({"error": f"Could not list charts: {e}"}), 500
    grouped = group_by_timeframe(charts)
    return jsonify({tf: [c.to_dict() for c in items] for tf, items in grouped.items()})


@app.route('/api/quick-analysis', methods=['POST'])
def quick_analysis():
    """Analyze the charts of a single timeframe."""
    data = _json_body()
    pair = _text_field(data, "pair").upper()
    timeframe = data.get("timeframe") or None
    if not pair or not timeframe:
        return jsonify({"error": "Pair and timeframe are required"}), 400
    if timeframe not in config.TIMEFRAMES:
        return jsonify({"error": f"Unknown timeframe: {timeframe}"}), 400

    analyzer = get_services().chart_analyzer
    if analyzer is None:
        return jsonify({"error": "Chart analysis requires an image-capable AI backend"}), 503

    start_time = time.time()
    try:
        analysis = asyncio.run(analyzer.analyze(pair, timeframe))
    except ProviderError as e:
        return _provider_error_response(e)
    except OSError as e:
        logger.error(f"Could not read {timeframe} charts for {pair}: {e}")
        return jsonify({"error": f"Could not read charts: {e}"}), 500

    if analysis.empty:
        return jsonify({"success": False, "error": f"No {timeframe} charts uploaded for {pair}"}), 404

    return jsonify({
        "success": True,
        "pair": pair,
        "timeframe": timeframe,
        "analysis": analysis.text,
        "chartsAnalyzed": analysis.charts_analyzed,
        "processingTimeMs": int((time.time() - start_time) * 1000),
    })


if __name__ == '__main__':
    setup_logging()
    check_environment()

    port = int(os.getenv("PORT", config.PORT))
    debug = os.getenv("FLASK_DEBUG", "0") == "1"

    print(f"\n{'='*60}")
    print("AGENT PIPPY - Trading Assistant API")
    print(f"{'='*60}")
    print(f"\nListening on: http://localhost:{port}")
    print(f"AI: {config.PRIMARY_PROVIDER} + {config.SECONDARY_PROVIDER} (debate)")
    print("Market Data: Finnhub quotes & news, economic calendar feed")
    print("\nPress Ctrl+C to stop the server")
    print(f"{'='*60}\n")

    app.run(host='0.0.0.0', port=port, debug=debug, threaded=True)
