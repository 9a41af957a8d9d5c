import logging
import networkx as nx
import numpy as np
from app_config import DEFAULT_WIDTH, DEFAULT_HEIGHT
from Helper.helperfunctions import parse_float


POSITION_KEYS = ("x", "y", "vx", "vy", "fx", "fy")


class TradeAggregator:
    """
    Folds trade legs into a wallet graph.

    Every wallet becomes a node carrying its volume and buy/sell counts.
    Every trade_id seen on both sides becomes a link from the selling
    wallet to the buying wallet. Graphs are rebuilt from scratch on each
    call; nothing is carried over between calls.
    """

    def __init__(self, rng: np.random.Generator = None):
        self.rng = rng or np.random.default_rng()
        self.logger = logging.getLogger("trade_aggregator")


    def aggregate(self, trades: list[dict], width: float = DEFAULT_WIDTH, height: float = DEFAULT_HEIGHT) -> dict:
        wallets = self._accumulate_wallets(trades, width, height)
        partial_links = self._collect_links(trades)

        max_notional_volume = 0.0
        for wallet in wallets.values():
            if wallet["total_notional_volume"] > max_notional_volume:
                max_notional_volume = wallet["total_notional_volume"]

        nodes = [self._to_graph_node(wallet, max_notional_volume) for wallet in wallets.values()]

        # Single-sided trades cannot be drawn as an edge
        links = [link for link in partial_links.values() if link["source"] and link["target"]]
        dropped = len(partial_links) - len(links)
        if dropped:
            self.logger.info(f"Dropped {dropped} trades with only one observed leg")

        stats = {
            "node_count": len(nodes),
            "edge_count": len(links),
            # Each trade is counted once per side
            "total_volume": sum(node["total_amount"] for node in nodes) / 2,
            "total_notional_volume": sum(node["total_notional_volume"] for node in nodes) / 2,
        }

        self.logger.info(f"Built graph with {len(nodes)} wallets and {len(links)} trades from {len(trades)} legs")
        return {"nodes": nodes, "links": links, "stats": stats}


    def _accumulate_wallets(self, trades: list[dict], width: float, height: float) -> dict:
        wallets = {}
        for trade in trades:
            wallet_id = trade["wallet"]
            wallet = wallets.get(wallet_id)
            if wallet is None:
                wallet = {
                    "id": wallet_id,
                    "total_amount": 0.0,
                    "total_notional_volume": 0.0,
                    "trade_count": 0,
                    "buy_count": 0,
                    "sell_count": 0,
                    "subaccount_ids": [],
                    # Spread new wallets over the viewport so a rebuild doesn't start stacked
                    "x": float(self.rng.uniform(0, width)),
                    "y": float(self.rng.uniform(0, height)),
                }
                wallets[wallet_id] = wallet

            trade_amount = parse_float(trade.get("trade_amount"))
            index_price = parse_float(trade.get("index_price"))

            wallet["trade_count"] += 1
            wallet["total_amount"] += trade_amount
            wallet["total_notional_volume"] += trade_amount * index_price

            subaccount_id = trade.get("subaccount_id")
            if subaccount_id not in wallet["subaccount_ids"]:
                wallet["subaccount_ids"].append(subaccount_id)

            if trade.get("direction") == "buy":
                wallet["buy_count"] += 1
            else:
                wallet["sell_count"] += 1

        return wallets


    def _collect_links(self, trades: list[dict]) -> dict:
        links = {}
        for trade in trades:
            trade_id = trade["trade_id"]
            link = links.get(trade_id)
            if link is None:
                link = {
                    "id": trade_id,
                    "source": None,
                    "target": None,
                    "amount": parse_float(trade.get("trade_amount")),
                    "price": parse_float(trade.get("trade_price")),
                    "timestamp": trade.get("timestamp"),
                }
                links[trade_id] = link

            if trade.get("direction") == "buy":
                link["target"] = trade["wallet"]
            else:
                link["source"] = trade["wallet"]

        return links


    @staticmethod
    def _to_graph_node(wallet: dict, max_notional_volume: float) -> dict:
        normalized_size = wallet["total_notional_volume"] / max_notional_volume if max_notional_volume > 0 else 1.0

        if wallet["buy_count"] > wallet["sell_count"]:
            node_type = "buyer"
        elif wallet["sell_count"] > wallet["buy_count"]:
            node_type = "seller"
        else:
            node_type = "mixed"

        return {
            **wallet,
            "size": wallet["total_notional_volume"],
            "max_amount": max_notional_volume,
            "normalized_size": normalized_size,
            "type": node_type,
        }


def strip_positions(node: dict) -> dict:
    """Node without its simulation fields, for comparing graphs built from the same trades"""
    return {key: value for key, value in node.items() if key not in POSITION_KEYS}


def to_networkx(graph: dict) -> nx.MultiDiGraph:
    """Seller -> buyer multigraph with one edge per trade, keyed by trade_id"""
    G = nx.MultiDiGraph()
    for node in graph["nodes"]:
        G.add_node(node["id"], **strip_positions(node))
    for link in graph["links"]:
        G.add_edge(link["source"], link["target"], key=link["id"],
                   amount=link["amount"], price=link["price"], timestamp=link["timestamp"])
    return G
