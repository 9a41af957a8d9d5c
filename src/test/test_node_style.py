import os
import sys
sys.path.append(os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))
import math
import unittest
from TradeGraph.node_style import (calculate_node_color, node_hsl, buy_ratio, node_radius, collision_radius,
                                   max_node_size, link_distance, charge_strength, edge_width, label_style,
                                   tooltip_content, detail_panel_content, hsl_to_rgb)


class TestNodeColor(unittest.TestCase):

    def test_no_trades_is_neutral_gray(self):
        self.assertEqual(calculate_node_color(0, 0), "hsl(210, 10%, 70%)")


    def test_all_sells_is_pure_red(self):
        self.assertEqual(calculate_node_color(0, 5), "hsl(0, 100%, 50%)")


    def test_all_buys_is_pure_green(self):
        self.assertEqual(calculate_node_color(7, 0), "hsl(142, 100%, 45%)")


    def test_even_split(self):
        self.assertEqual(calculate_node_color(3, 3), "hsl(71, 85%, 45%)")


    def test_hue_is_monotonic_in_buy_ratio(self):
        """Hue never decreases as the share of buys grows"""
        total = 1000
        previous_hue = -1
        for buys in range(1, total):
            ratio = buy_ratio(buys, total - buys)
            if ratio in (0, 100):
                continue
            hue = node_hsl(buys, total - buys)[0]
            self.assertGreaterEqual(hue, previous_hue)
            self.assertTrue(0 <= hue <= 142)
            previous_hue = hue


    def test_color_is_deterministic(self):
        for buys, sells in [(1, 2), (5, 5), (9, 1), (0, 3)]:
            self.assertEqual(calculate_node_color(buys, sells), calculate_node_color(buys, sells))


    def test_hsl_to_rgb(self):
        for actual, expected in zip(hsl_to_rgb(0, 100, 50), (1.0, 0.0, 0.0)):
            self.assertAlmostEqual(actual, expected)


class TestNodeSizing(unittest.TestCase):

    def test_radius_floor(self):
        self.assertEqual(node_radius(0.0, 10), 3)
        self.assertEqual(node_radius(0.01, 10), 3)
        self.assertEqual(node_radius(float("nan"), 10), 3)


    def test_radius_scales_with_settings(self):
        self.assertEqual(node_radius(1.0, 10), 50)
        self.assertEqual(node_radius(1.0, 20), 100)
        self.assertEqual(node_radius(0.5, 10), 25)


    def test_small_viewport_shrinks_nodes(self):
        self.assertAlmostEqual(max_node_size(10, small_viewport=True), 18.0)
        self.assertLess(node_radius(1.0, 10, small_viewport=True), node_radius(1.0, 10))


    def test_collision_radius_adds_buffer(self):
        self.assertEqual(collision_radius(1.0, 10), 55)
        self.assertEqual(collision_radius(0.0, 10), 8)


    def test_force_parameters(self):
        self.assertEqual(link_distance(), 100)
        self.assertEqual(link_distance(small_viewport=True), 60)
        self.assertEqual(charge_strength(30), -300)
        self.assertEqual(charge_strength(30, small_viewport=True), -150)


    def test_edge_width(self):
        self.assertEqual(edge_width(4.0, 10), 2.0)
        self.assertEqual(edge_width(0.01, 10), 1)
        self.assertEqual(edge_width(float("nan"), 10), 1)


    def test_label_style(self):
        self.assertEqual(label_style(1.0, 10), {"font_size": 8, "dy": 62})
        self.assertEqual(label_style(0.0, 10, small_viewport=True)["font_size"], 6)


class TestNodeText(unittest.TestCase):

    def setUp(self):
        self.node = {
            "id": "0x1234567890abcdef1234567890abcdef12345678",
            "total_amount": 1.23456,
            "total_notional_volume": 2469.12,
            "trade_count": 3,
            "buy_count": 2,
            "sell_count": 1,
            "subaccount_ids": [11, 42],
        }


    def test_tooltip_content(self):
        content = tooltip_content(self.node)
        self.assertEqual(content["wallet"], "0x1234...5678")
        self.assertEqual(content["amount"], "$2,469.12 (1.2346 tokens)")
        self.assertEqual(content["count"], "3")
        self.assertEqual(content["ratio"], "2:1 (67% buy)")
        self.assertEqual(content["subaccounts"], "11, 42")


    def test_detail_panel_has_full_address(self):
        content = detail_panel_content(self.node)
        self.assertEqual(content["wallet"], self.node["id"])
        self.assertTrue(content["account_url"].endswith(self.node["id"]))


    def test_no_subaccounts(self):
        self.node["subaccount_ids"] = []
        self.assertEqual(tooltip_content(self.node)["subaccounts"], "0")


    def test_ratio_rounds_half_up(self):
        self.node.update({"trade_count": 200, "buy_count": 101, "sell_count": 99})
        self.assertEqual(tooltip_content(self.node)["ratio"], "101:99 (51% buy)")


if __name__ == "__main__":
    unittest.main()
