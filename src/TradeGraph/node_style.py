import colorsys
import math
from app_config import SMALL_VIEWPORT_WIDTH
from Helper.helperfunctions import shorten_address


NEUTRAL_COLOR = "hsl(210, 10%, 70%)"
PURE_SELL_COLOR = "hsl(0, 100%, 50%)"
PURE_BUY_COLOR = "hsl(142, 100%, 45%)"
SELL_HUE = 0
BUY_HUE = 142

TYPE_COLORS = {
    "buyer": "#22C55E",
    "seller": "#EF4444",
    "mixed": "#EAB308",
}

MIN_NODE_RADIUS = 3
COLLISION_BUFFER = 5
ACCOUNT_URL = "https://www.derive.xyz/user/{}"


def is_small_viewport(width: float) -> bool:
    return width < SMALL_VIEWPORT_WIDTH


def buy_ratio(buy_count: int, sell_count: int) -> int:
    """Whole-number percentage of buys, 0 (all sells) .. 100 (all buys)"""
    return math.floor(buy_count / (buy_count + sell_count) * 100)


def node_hsl(buy_count: int, sell_count: int) -> tuple:
    """(hue, saturation %, lightness %) for a wallet with the given buy/sell counts"""
    if buy_count == 0 and sell_count == 0:
        return (210, 10, 70)

    ratio = buy_ratio(buy_count, sell_count)
    if ratio == 0:
        return (SELL_HUE, 100, 50)
    if ratio == 100:
        return (BUY_HUE, 100, 45)

    hue = math.floor(ratio / 100 * (BUY_HUE - SELL_HUE) + SELL_HUE)
    saturation = 85 - abs(ratio - 50) * 0.1
    lightness = 45 - abs(ratio - 50) * 0.1
    return (hue, saturation, lightness)


def calculate_node_color(buy_count: int, sell_count: int) -> str:
    """CSS hsl() color going from red (all sells) to green (all buys)"""
    hue, saturation, lightness = node_hsl(buy_count, sell_count)
    return f"hsl({hue:g}, {saturation:g}%, {lightness:g}%)"


def hsl_to_rgb(hue: float, saturation: float, lightness: float) -> tuple:
    """HSL in degrees/percent to an RGB tuple in [0, 1]"""
    return colorsys.hls_to_rgb(hue / 360, lightness / 100, saturation / 100)


def node_rgb(buy_count: int, sell_count: int) -> tuple:
    return hsl_to_rgb(*node_hsl(buy_count, sell_count))


def max_node_size(node_size_scale: int, small_viewport: bool = False) -> float:
    """Radius of the largest node; the smaller viewport also gets a 0.6 scale factor"""
    base = 30 if small_viewport else 50
    scale_factor = 0.6 if small_viewport else 1.0
    return base * (node_size_scale / 10) * scale_factor


def node_radius(normalized_size: float, node_size_scale: int, small_viewport: bool = False) -> float:
    # max() keeps the floor when normalized_size is NaN
    return max(MIN_NODE_RADIUS, normalized_size * max_node_size(node_size_scale, small_viewport))


def collision_radius(normalized_size: float, node_size_scale: int, small_viewport: bool = False) -> float:
    return node_radius(normalized_size, node_size_scale, small_viewport) + COLLISION_BUFFER


def link_distance(small_viewport: bool = False) -> float:
    return 60 if small_viewport else 100


def charge_strength(force_strength: int, small_viewport: bool = False) -> float:
    return -force_strength * (5 if small_viewport else 10)


def edge_width(amount: float, edge_thickness_scale: int) -> float:
    width = math.sqrt(amount) * (edge_thickness_scale / 10) if amount >= 0 else math.nan
    return max(1, width)


def label_style(normalized_size: float, node_size_scale: int, small_viewport: bool = False) -> dict:
    return {
        "font_size": 6 if small_viewport else 8,
        "dy": node_radius(normalized_size, node_size_scale, small_viewport) + (8 if small_viewport else 12),
    }


def format_notional(node: dict) -> str:
    return f"${node['total_notional_volume']:,.2f} ({node['total_amount']:.4f} tokens)"


def format_ratio(node: dict) -> str:
    trade_count = node["trade_count"]
    # Half-up rounding, so 50.5 -> 51
    buy_percentage = math.floor(node["buy_count"] / trade_count * 100 + 0.5) if trade_count > 0 else 0
    return f"{node['buy_count']}:{node['sell_count']} ({buy_percentage}% buy)"


def format_subaccounts(node: dict) -> str:
    ids = node.get("subaccount_ids") or []
    return ", ".join(str(i) for i in ids) if ids else "0"


def tooltip_content(node: dict) -> dict:
    """Hover tooltip text for a node"""
    return {
        "wallet": shorten_address(node["id"]),
        "amount": format_notional(node),
        "count": str(node["trade_count"]),
        "ratio": format_ratio(node),
        "subaccounts": format_subaccounts(node),
    }


def detail_panel_content(node: dict) -> dict:
    """Selected-node panel: like the tooltip but with the full address and account link"""
    content = tooltip_content(node)
    content["wallet"] = node["id"]
    content["account_url"] = ACCOUNT_URL.format(node["id"])
    return content
