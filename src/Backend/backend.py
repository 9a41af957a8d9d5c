from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import asyncio
import logging
import requests
import uvicorn
import numpy as np
from datetime import datetime, timezone
from app_config import (LYRA_API_URL, REQUEST_TIMEOUT, API_HOST, API_PORT, LOG_LEVEL, DEFAULT_WIDTH,
                        DEFAULT_HEIGHT, DEFAULT_VISUAL_SETTINGS, default_filters)
from Helper.helperfunctions import json_safe
from TradeFetching.fetch_errors import ValidationError, RemoteError, PartialBatchFailure
from TradeFetching.trade_fetcher import TradeFetcher
from TradeGraph.trade_aggregator import TradeAggregator
from TradeGraph.node_style import calculate_node_color, is_small_viewport, node_radius, edge_width
from LayoutSimulation.force_simulation import ForceSimulation
from Controller.graph_controller import validate_visual_settings


# Initialize FastAPI app
app = FastAPI(title="Trade Graph API", version="1.0.0")

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=LOG_LEVEL
)
logger = logging.getLogger("trade-graph-api")

MAX_LAYOUT_TICKS = 600

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Incoming camelCase filter fields -> upstream snake_case fields
UPSTREAM_FIELDS = {
    "currency": "currency",
    "fromTimestamp": "from_timestamp",
    "toTimestamp": "to_timestamp",
    "instrumentName": "instrument_name",
    "instrumentType": "instrument_type",
    "page": "page",
    "pageSize": "page_size",
    "txStatus": "tx_status",
}


def forward_trade_history(filters: dict) -> tuple:
    """Posts one page query to the upstream API; returns (status_code, payload)"""
    body = {upstream: filters.get(field) for field, upstream in UPSTREAM_FIELDS.items()}
    body["trade_id"] = None
    body["tx_hash"] = None

    response = requests.post(
        LYRA_API_URL,
        json=body,
        headers={"accept": "application/json", "content-type": "application/json"},
        timeout=REQUEST_TIMEOUT
    )

    if not response.ok:
        logger.error(f"Upstream API error ({response.status_code}): {response.text}")
        return response.status_code, {"message": f"Lyra API error: {response.reason}"}

    return 200, response.json().get("result")


class UpstreamTradeClient:
    """Page client that talks to the upstream API directly instead of going through the proxy"""

    def fetch_page(self, filters: dict, page: int) -> dict:
        request_filters = {
            "currency": filters.get("currency"),
            "fromTimestamp": filters.get("from_timestamp"),
            "toTimestamp": filters.get("to_timestamp"),
            "instrumentName": filters.get("instrument_name"),
            "instrumentType": filters.get("instrument_type"),
            "page": page,
            "pageSize": filters.get("page_size"),
            "txStatus": filters.get("tx_status"),
        }
        try:
            status, payload = forward_trade_history(request_filters)
        except requests.RequestException as e:
            raise RemoteError(str(e)) from e

        if status != 200:
            raise RemoteError(payload["message"], status)
        return payload or {"trades": [], "pagination": None}


@app.get("/")
def read_root():
    return {
        "message": "Trade Graph API",
        "status": "operational",
        "timestamp": datetime.now().isoformat(),
        "endpoints": [
            "/api/trade-history",
            "/api/trade-graph",
            "/health"
        ]
    }


@app.get("/health")
def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "upstream": LYRA_API_URL,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.post("/api/trade-history")
def get_trade_history(body: dict):
    """Forwards a trade-history page query to the upstream API unchanged"""
    filters = body.get("filters", body)
    try:
        status, payload = forward_trade_history(filters)
    except Exception as e:
        logger.error(f"Server error fetching trade history: {str(e)}")
        return JSONResponse(status_code=500, content={"message": str(e) or "Internal server error"})

    if status != 200:
        return JSONResponse(status_code=status, content=payload)
    return payload


def _graph_filters(raw: dict) -> dict:
    filters = default_filters()
    for field, key in UPSTREAM_FIELDS.items():
        if field in raw:
            filters[key] = raw[field]
    return filters


@app.post("/api/trade-graph")
async def get_trade_graph(request: Request):
    """
    Fetches every page for the filters, aggregates the wallet graph and
    runs the layout until it settles. Returns positioned, styled nodes
    and links ready for drawing.
    """
    body = await request.json()
    filters = _graph_filters(body.get("filters", {}))
    width = body.get("width", DEFAULT_WIDTH)
    height = body.get("height", DEFAULT_HEIGHT)
    visual_settings = {**DEFAULT_VISUAL_SETTINGS, **body.get("visualSettings", {})}

    try:
        validate_visual_settings(visual_settings)
        data = await TradeFetcher(client=UpstreamTradeClient()).fetch_all(filters)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"message": str(e)})
    except PartialBatchFailure as e:
        logger.error(f"Page {e.page} failed, aborting graph build: {e}")
        return JSONResponse(status_code=502, content={"message": str(e)})
    except RemoteError as e:
        return JSONResponse(status_code=e.status or 502, content={"message": e.message})

    rng = np.random.default_rng(body.get("seed"))
    graph = TradeAggregator(rng).aggregate(data["trades"], width, height)

    simulation = ForceSimulation(graph["nodes"], graph["links"], width, height,
                                 force_strength=visual_settings["force_strength"],
                                 node_size_scale=visual_settings["node_size_scale"], rng=rng)
    ticks = await asyncio.to_thread(simulation.run, MAX_LAYOUT_TICKS)
    simulation.sync_nodes()
    logger.info(f"Layout of {len(graph['nodes'])} wallets finished after {ticks} ticks ({simulation.state})")

    small = is_small_viewport(width)
    nodes = [{
        **node,
        "color": calculate_node_color(node["buy_count"], node["sell_count"]),
        "radius": node_radius(node["normalized_size"], visual_settings["node_size_scale"], small),
    } for node in graph["nodes"]]
    links = [{
        **link,
        "width": edge_width(link["amount"], visual_settings["edge_thickness_scale"]),
    } for link in graph["links"]]

    return json_safe({
        "nodes": nodes,
        "links": links,
        "stats": graph["stats"],
        "pagination": data["pagination"],
        "layout": {"ticks": ticks, "state": simulation.state},
    })


if __name__ == "__main__":
    # Run using: python this_file_name.py
    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        timeout_keep_alive=30,
        log_config=None
    )
