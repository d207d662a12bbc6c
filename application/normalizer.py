"""
Turns a freeform utterance plus the current draft items into a revised item
list by asking a chat-completion model.

All interpretation (add / modify / delete, speech-recognition fixes) lives in
the prompt; this module only builds the request and checks the reply shape.
"""
from __future__ import annotations

import json
from typing import Any, List, Mapping, Protocol, Sequence

from domain.errors import EmptyInput, MalformedResponse
from domain.order import OrderItem
from infrastructure.logging import get_logger

logger = get_logger("order-entry")

SYSTEM_PROMPT = """你是食品供应商的开单助手，负责根据用户的语音输入维护一张商品清单。返回的商品名称必须是常见的食品或食材。

语音识别结果可能有误，请先校对再处理。常见校对示例：
- "15块吧" → "15.8"
- "肌肉" → "鸡肉"（食品供应场景）
- "土斗" → "土豆"
- "斤半" → "1.5斤"

支持的操作：
1. 添加商品：例如 "西红柿 2斤 5块钱"
2. 修改商品的数量、单价或单位：例如 "西红柿改成3斤"、"西红柿价格改成6块"
3. 按名称删除商品：例如 "删除西红柿"、"去掉西红柿"

规则：
- 单位通常是"斤"、"公斤"、"个"、"袋"、"箱"等
- price 是单价，不是总价
- 用户没有提到的字段保持原值，新商品缺少的字段使用合理默认值
- 未被提及的商品必须原样保留

只返回一个 JSON 对象，包含名为 "items" 的数组，数组中每个对象包含 "name" (string)、"quantity" (number)、"unit" (string)、"price" (number)。返回更新后的完整清单，不要输出其他文字。"""


class CompletionClient(Protocol):
    async def complete(self, messages: Sequence[Mapping[str, str]]) -> str: ...


def _item_records(items: Sequence[Any]) -> List[dict]:
    records = []
    for item in items:
        if isinstance(item, OrderItem):
            records.append(item.to_record())
        elif isinstance(item, Mapping):
            records.append(dict(item))
    return records


def build_messages(current_items: Sequence[Any], utterance: str) -> List[dict]:
    current = json.dumps(_item_records(current_items), ensure_ascii=False)
    user_turn = (
        f"这是当前的订单商品列表: {current}\n\n"
        f'用户刚刚说了: "{utterance}"\n\n'
        "请根据用户的意图更新商品列表，并返回更新后的完整JSON对象。"
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_turn},
    ]


def parse_items(content: str) -> List[Any]:
    try:
        data = json.loads(content)
    except ValueError as exc:
        raise MalformedResponse("Model reply is not valid JSON") from exc
    if not isinstance(data, Mapping):
        raise MalformedResponse("Model reply must be a JSON object")
    items = data.get("items")
    if not isinstance(items, list):
        raise MalformedResponse("Model reply has no items list")
    return items


class OrderNormalizer:
    def __init__(self, client: CompletionClient):
        self.client = client

    async def normalize(self, current_items: Sequence[Any], utterance: str) -> List[Any]:
        """Return the model's complete item list for the utterance, unfiltered."""
        text = (utterance or "").strip()
        if not text:
            raise EmptyInput("Please enter the items to record")

        messages = build_messages(current_items, text)
        logger.debug("Requesting normalization", utterance=text, current_items=len(current_items))
        content = await self.client.complete(messages)
        items = parse_items(content)
        logger.info("Normalization reply parsed", items=len(items))
        return items
