"""
상품 설명 멘트 생성 (OpenAI 호환 API, 기본 SiliconFlow)

상품마다 1회 호출, 호출 사이 throttle_sec 대기.
실패/빈 응답이면 대체 멘트(SCRIPT_TEMPLATES 순환)로 채워서 멘트가 비는 일은 없다.
라이브룸 제목도 같은 클라이언트로 생성 (generate_title, 실패 시 DEFAULT_TITLE).
"""

import asyncio
import logging
import os
import re
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from openai import OpenAI

from src.live.models import AIScript, LiveProduct
from src.live.store import fallback_script

logger = logging.getLogger(__name__)

SILICON_FLOW_API_BASE = "https://api.siliconflow.cn/v1"
DEFAULT_MODEL = "Qwen/Qwen2-7B-Instruct"
MAX_TOKENS = 2000
TEMPERATURE = 0.7
TITLE_MAX_TOKENS = 1000
TITLE_TEMPERATURE = 0.7
TITLE_MAX_CHARS = 15
DEFAULT_TITLE = "好物推荐超值直播"

TITLE_PROMPT = """生成京东直播间通用标题，要求：
1.每个标题不超过15个字
2.简洁有力突出卖点
3.不要标点符号
4.不要序号
5.不要有具体的商品类型或者名称
6.不要使用敏感词如：诱惑、最、第一、绝对、秒杀、疯狂、限时等夸大或营销敏感词汇"""

# 모델이 규칙을 어겨도 이 단어가 든 후보는 버린다
TITLE_BANNED_WORDS = ("诱惑", "最", "第一", "绝对", "秒杀", "疯狂", "限时")

_TITLE_NUMBERING = re.compile(r"^\s*(?:\d+\s*[.、)）:：]|[-*•])\s*")
_TITLE_PUNCT = re.compile(r"[^\w]")

SCRIPT_SYSTEM = "你是一个专业的直播带货主播，请根据商品信息生成吸引人的直播话术。"

# {title}, {price}, {shop_name} 치환
SCRIPT_USER_TEMPLATE = """这是商品的基本信息：
商品名称：{title}
商品价格：{price}
店铺名称：{shop_name}

我要做直播商品讲解，你帮我写一个商品的口播词，400字左右，生成我直接可以用的，不用写框架，不要使用表情和颜文字，写成一段就行，别留那么多空行，使用中文。不要使用最多，第一，必须，顶级，国家级等极限词，不要使用美白，抗皱违禁词。类似这样，

家人们，今天给大家介绍一款超棒的手机 —— 荣耀 Play9T！
外观上，荣耀 Play9T 简直就是 "颜值担当"。它的机身线条流畅，轻薄又便携，拿在手里十分舒适。时尚的配色方案，每一种都独具魅力，不管你是走简约风还是个性风，都能选到合心意的颜色。
性能方面，荣耀 Play9T 也毫不逊色。搭载了强劲的处理器，运行速度超快，多任务处理轻松自如。无论是刷短视频、玩游戏，还是日常办公，它都能高效完成，让你告别卡顿和等待的烦恼。
它的拍照功能同样出色。高清的摄像头，能够捕捉每一个精彩瞬间。白天拍摄，色彩鲜艳、画面清晰；夜晚拍摄，也能有效减少噪点，拍出质感满满的照片。有了它，你随时都能记录生活中的美好。
再说说续航，荣耀 Play9T 配备了大容量电池，续航能力超强。就算你一整天都在使用手机，也不用担心电量不足。而且它还支持快速充电，短时间就能补充大量电量，让你没有后顾之忧。
这么一款外观美、性能强、拍照好、续航久的荣耀 Play9T，你还在等什么呢？赶紧入手一台吧！"""


def build_prompt(product: LiveProduct) -> str:
    """상품 정보 → 사용자 프롬프트. 가격이 없으면 '优惠价'."""
    return SCRIPT_USER_TEMPLATE.format(
        title=product.title or product.sku,
        price=product.price or "优惠价",
        shop_name=product.shop_name,
    )


def _first_choice_content(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    msg = getattr(choices[0], "message", None)
    content = getattr(msg, "content", None) if msg is not None else None
    return str(content or "")


def pick_title(text: str) -> Optional[str]:
    """
    모델 응답에서 라이브룸 제목 하나를 고른다.
    번호/기호와 문장부호를 지우고, 금지어가 든 줄은 건너뛰고, 15자로 자른다.
    """
    for line in (text or "").splitlines():
        candidate = _TITLE_PUNCT.sub("", _TITLE_NUMBERING.sub("", line))
        if not candidate:
            continue
        if any(w in candidate for w in TITLE_BANNED_WORDS):
            logger.debug("제목 후보 제외 (금지어): %s", candidate)
            continue
        return candidate[:TITLE_MAX_CHARS]
    return None


class ScriptGenerator:
    """상품 목록 → AIScript 목록 (상품 순서 유지)"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        throttle_sec: float = 1.0,
        client: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            api_key: 없으면 AI_API_KEY 환경변수. 둘 다 없으면 전부 대체 멘트 사용
            client: OpenAI 호환 클라이언트 (테스트 주입용)
            sleep: 호출 간 대기 함수
        """
        self.api_key = (api_key or os.environ.get("AI_API_KEY", "")).strip()
        self.model = (model or "").strip() or (os.environ.get("AI_MODEL") or "").strip() or DEFAULT_MODEL
        self.base_url = (base_url or "").strip() or SILICON_FLOW_API_BASE
        self.throttle_sec = throttle_sec
        self._sleep = sleep
        self._client = client
        if self._client is None and self.api_key:
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        logger.info(
            "ScriptGenerator 초기화: model=%s, base_url=%s, enabled=%s",
            self.model, self.base_url, self._client is not None,
        )

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def generate(self, prompt: str) -> str:
        """
        프롬프트 1개 → 멘트 텍스트 (동기 호출).

        Raises:
            RuntimeError: 클라이언트 없음 또는 빈 응답
            openai 예외: API 오류
        """
        return self._complete(
            [
                {"role": "system", "content": SCRIPT_SYSTEM},
                {"role": "user", "content": prompt},
            ],
            MAX_TOKENS,
            TEMPERATURE,
        )

    def _complete(self, messages: List[dict], max_tokens: int, temperature: float) -> str:
        if self._client is None:
            raise RuntimeError("AI_API_KEY가 설정되지 않았습니다")
        response = self._client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        text = _first_choice_content(response).strip()
        if not text:
            raise RuntimeError("빈 응답")
        return text

    async def generate_title(self) -> str:
        """라이브룸 제목 생성. 키가 없거나 실패/쓸 만한 후보가 없으면 DEFAULT_TITLE."""
        if not self.enabled:
            return DEFAULT_TITLE
        try:
            text = await asyncio.to_thread(
                self._complete,
                [{"role": "user", "content": TITLE_PROMPT}],
                TITLE_MAX_TOKENS,
                TITLE_TEMPERATURE,
            )
        except Exception as e:
            logger.warning("제목 생성 실패: %s", e)
            return DEFAULT_TITLE
        title = pick_title(text)
        if title is None:
            logger.warning("제목 후보 없음, 기본 제목 사용: %r", text)
            return DEFAULT_TITLE
        logger.info("라이브룸 제목 생성: %s", title)
        return title

    async def generate_scripts(self, products: Sequence[LiveProduct]) -> List[AIScript]:
        """상품마다 멘트 생성. 실패한 상품은 대체 멘트."""
        scripts: List[AIScript] = []
        failed = 0
        for i, product in enumerate(products):
            if i > 0 and self.enabled and self.throttle_sec > 0:
                await self._sleep(self.throttle_sec)
            content = ""
            if self.enabled:
                try:
                    content = await asyncio.to_thread(self.generate, build_prompt(product))
                except Exception as e:
                    logger.warning("멘트 생성 실패 (%d번 %s): %s", i, product.sku, e)
            if not content:
                failed += 1
                content = fallback_script(i)
            scripts.append(AIScript(content=content, related_product_id=product.sku))
        logger.info("멘트 생성 완료: %d개 (대체 멘트 %d개)", len(scripts), failed)
        return scripts
