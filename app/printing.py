"""Standalone printable HTML report for a set of committed orders."""
from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from html import escape
from typing import Optional, Sequence

from domain.errors import ValidationFailed
from domain.order import Order
from domain.report import orders_total
from domain.workspace import WorkspaceState

_STYLE = """
* { box-sizing: border-box; }
body { font-family: -apple-system, 'PingFang SC', 'Microsoft YaHei', sans-serif; margin: 0; padding: 20px; font-size: 14px; color: #333; }
.header { text-align: center; margin-bottom: 30px; border-bottom: 2px solid #44bba4; padding-bottom: 15px; }
.header h1 { margin: 0 0 10px 0; color: #44bba4; font-size: 24px; }
.order { border: 2px solid #44bba4; border-radius: 12px; padding: 20px; margin-bottom: 20px; page-break-inside: avoid; }
.order-header { display: flex; justify-content: space-between; font-weight: bold; font-size: 18px; margin-bottom: 15px; }
table { width: 100%; border-collapse: collapse; }
th, td { border: 1px solid #d3d0cb; padding: 10px 8px; text-align: center; }
th { background-color: #44bba4; color: white; }
td.name { text-align: left; font-weight: 600; }
tr.subtotal td { background-color: #faf1d9; font-weight: bold; }
.grand-total { text-align: right; font-size: 20px; font-weight: bold; color: #e7bb41; margin-top: 30px; }
@media print { body { padding: 0; font-size: 12px; } th { -webkit-print-color-adjust: exact; print-color-adjust: exact; } }
"""


def format_currency(amount: float) -> str:
    return f"¥{amount:.2f}"


def _format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f"{value:g}"


def _render_order(order: Order, customer_name: str, tz: tzinfo) -> str:
    rows = "".join(
        "<tr>"
        f'<td class="name">{escape(item.name)}</td>'
        f"<td>{_format_number(item.quantity)}</td>"
        f"<td>{escape(item.unit)}</td>"
        f"<td>{format_currency(item.price or 0)}</td>"
        f"<td>{format_currency(item.total())}</td>"
        "</tr>"
        for item in order.items
    )
    return (
        '<div class="order">'
        '<div class="order-header">'
        f"<span>客户: {escape(customer_name)}</span>"
        f"<span>日期: {order.created_at.astimezone(tz).strftime('%Y-%m-%d %H:%M')}</span>"
        "</div>"
        "<table><thead><tr><th>商品</th><th>数量</th><th>单位</th><th>单价</th><th>金额</th></tr></thead>"
        f"<tbody>{rows}"
        f'<tr class="subtotal"><td colspan="4">合计</td><td>{format_currency(order.grand_total)}</td></tr>'
        "</tbody></table>"
        "</div>"
    )


def render_report_html(
    title: str,
    orders: Sequence[Order],
    state: WorkspaceState,
    printed_at: datetime,
    tz: tzinfo = timezone.utc,
) -> str:
    if not orders:
        raise ValidationFailed("没有订单可打印")

    sections = []
    for order in orders:
        customer = state.find_customer(order.customer_id)
        sections.append(_render_order(order, customer.name if customer else "未知厂家", tz))

    return (
        "<!DOCTYPE html>"
        '<html lang="zh-CN"><head><meta charset="UTF-8">'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">'
        f"<title>{escape(title)}</title><style>{_STYLE}</style></head><body>"
        '<div class="header">'
        f"<h1>{escape(title)}</h1>"
        f"<p>打印时间: {printed_at.strftime('%Y-%m-%d %H:%M:%S')}</p>"
        f"<p>共 {len(orders)} 个订单</p>"
        "</div>"
        f"{''.join(sections)}"
        f'<div class="grand-total">总计: {format_currency(orders_total(orders))}</div>'
        "</body></html>"
    )
