"""
Per-item en-CA / fr-FR text pairs for feed items and notifications.

Items carry the text in each language they are known in. Missing
languages are filled lazily through an injected translator; a failing
translator degrades to the source text and never fails the caller. A
translator that does not answer within `timeout_seconds` is treated as failed.
"""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple

from app.core.i18n import SUPPORTED_LANGUAGES, other_language, resolve_language
from app.schemas.coach import FeedItem

logger = logging.getLogger(__name__)

Translator = Callable[[str, str], Awaitable[str]]


class BilingualTextCache:
    def __init__(self, max_entries: int = 256, timeout_seconds: Optional[float] = 10.0) -> None:
        self.max_entries = max(1, int(max_entries))
        self.timeout_seconds = timeout_seconds
        self._memo: "OrderedDict[Tuple[str, str], str]" = OrderedDict()

    def _memo_get(self, text_value: str, target_language: str) -> Optional[str]:
        key = (text_value, target_language)
        if key not in self._memo:
            return None
        self._memo.move_to_end(key)
        return self._memo[key]

    def _memo_put(self, text_value: str, target_language: str, translated: str) -> None:
        self._memo[(text_value, target_language)] = translated
        self._memo.move_to_end((text_value, target_language))
        while len(self._memo) > self.max_entries:
            self._memo.popitem(last=False)

    async def _translate(
        self,
        text_value: str,
        target_language: str,
        translate: Optional[Translator],
    ) -> Optional[str]:
        if not text_value:
            return ""
        cached = self._memo_get(text_value, target_language)
        if cached is not None:
            return cached
        if translate is None:
            return None
        try:
            translated = await asyncio.wait_for(translate(text_value, target_language), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("coach_translation_timeout target=%s timeout=%s", target_language, self.timeout_seconds)
            return text_value
        except Exception as exc:
            logger.warning("coach_translation_failed target=%s error=%s", target_language, exc)
            return text_value
        translated = (translated or "").strip()
        if not translated:
            return text_value
        self._memo_put(text_value, target_language, translated)
        return translated

    @staticmethod
    def is_complete(item: FeedItem) -> bool:
        return all(
            item.title_by_language.get(language) is not None and item.message_by_language.get(language) is not None
            for language in SUPPORTED_LANGUAGES
        )

    @staticmethod
    def resolve(
        item: FeedItem,
        active_language: Optional[str],
        fallback_title: str = "",
        fallback_message: str = "",
    ) -> FeedItem:
        active = resolve_language(active_language)
        source = resolve_language(item.source_language)
        title = item.title_by_language.get(active) or item.title_by_language.get(source) or fallback_title
        message = item.message_by_language.get(active) or item.message_by_language.get(source) or fallback_message
        return item.model_copy(update={"title": title, "message": message})

    async def localize(
        self,
        item: FeedItem,
        source_language: Optional[str],
        active_language: Optional[str],
        translate: Optional[Translator] = None,
        fallback_title: str = "",
        fallback_message: str = "",
    ) -> FeedItem:
        source = resolve_language(source_language)
        target = other_language(source)
        titles = dict(item.title_by_language)
        messages = dict(item.message_by_language)

        if titles.get(source) is None:
            titles[source] = item.title
        if messages.get(source) is None:
            messages[source] = item.message

        if titles.get(target) is None:
            translated = await self._translate(titles[source], target, translate)
            if translated is not None:
                titles[target] = translated
        if messages.get(target) is None:
            translated = await self._translate(messages[source], target, translate)
            if translated is not None:
                messages[target] = translated

        localized = item.model_copy(
            update={
                "title_by_language": titles,
                "message_by_language": messages,
                "source_language": source,
            }
        )
        return self.resolve(localized, active_language, fallback_title, fallback_message)

    async def relocalize_feed(
        self,
        items: Iterable[FeedItem],
        active_language: Optional[str],
        translate: Optional[Translator] = None,
        fallback_title: str = "",
    ) -> List[FeedItem]:
        localized: List[FeedItem] = []
        for item in items:
            if self.is_complete(item):
                localized.append(self.resolve(item, active_language, fallback_title))
                continue
            localized.append(
                await self.localize(
                    item,
                    item.source_language,
                    active_language,
                    translate=translate,
                    fallback_title=fallback_title,
                )
            )
        return localized
