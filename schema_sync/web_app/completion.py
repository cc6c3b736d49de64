# -*- coding: utf-8 -*-
"""
AI SQL completion client - chat-completions API over requests
"""
import json
import logging
import re
import time
from typing import Callable, Optional

import requests

from schema_sync.core.errors import CompletionError
from schema_sync.core.schema_model import Settings

logger = logging.getLogger(__name__)

CODE_FENCE_RE = re.compile(r'```(?:sql|postgresql|mysql|sqlite)?\s*\n(.*?)```', re.IGNORECASE | re.DOTALL)
NO_RETRY_STATUS = (401, 403)
NO_RETRY_MARKERS = ('api key', 'quota', 'rate limit')


def build_schema_prompt(description: str, settings: Optional[Settings] = None) -> str:
    """根据用户描述和编辑器设置构造建表提示词"""
    settings = settings or Settings()
    dialect = settings.dialect.upper()
    if settings.case_sensitive_identifiers:
        identifiers = 'Use quotes for identifiers (like "customer_id", "first_name", etc.)'
        column = '"category_id"'
        reference = '"categories"("category_id")'
    else:
        identifiers = "Don't use quotes for regular identifiers (like customer_id, first_name, etc.)"
        column = 'category_id'
        reference = 'categories(category_id)'
    if settings.use_inline_constraints:
        constraints = f'Use inline foreign key constraints (like: {column} INTEGER REFERENCES {reference})'
    else:
        constraints = 'Define foreign keys using separate ALTER TABLE statements after creating all tables'

    return f"""I need to create a database schema for the following application:
{description}

Please provide a SQL schema with tables, relationships, and appropriate constraints.
Focus on {dialect} syntax with proper primary keys, foreign keys, and data types.
Return ONLY valid SQL code without any explanations or markdown formatting.

IMPORTANT SQL FORMAT REQUIREMENTS:
- Use "CREATE TABLE IF NOT EXISTS" for all table definitions
- Use SERIAL for auto-incrementing primary keys
- Use standard {dialect} data types (VARCHAR, TEXT, NUMERIC, etc.)
- {identifiers}
- {constraints}
- Add NOT NULL constraints where appropriate
- Use UNIQUE constraints where needed
- Format the SQL with proper indentation (2 spaces) and clear readability
"""


def extract_sql(text: str) -> str:
    """去掉AI回复中的Markdown代码块标记"""
    if not text:
        return ''
    match = CODE_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.replace('```', '').strip()


class CompletionClient:
    """Chat-completions client with bounded retry and a streaming fallback"""

    def __init__(self, api_key: str, api_url: str, model: str = 'deepseek-chat', timeout: float = 120,
                 max_attempts: int = 2, backoff: float = 1.0,
                 sleep: Optional[Callable[[float], None]] = None):
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.sleep = sleep or time.sleep

    def _headers(self):
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}"
        }

    def _payload(self, prompt: str, stream: bool = False):
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": prompt
                }
            ],
            "temperature": 0.3,
            "max_tokens": 4000,
            "stream": stream
        }

    @staticmethod
    def _is_fatal(message: str, status: Optional[int] = None) -> bool:
        if status in NO_RETRY_STATUS:
            return True
        lowered = message.lower()
        return any(marker in lowered for marker in NO_RETRY_MARKERS)

    def _request_once(self, prompt: str) -> str:
        response = requests.post(self.api_url, headers=self._headers(),
                                 json=self._payload(prompt), timeout=self.timeout)
        if response.status_code != 200:
            raise CompletionError(f"Completion API returned {response.status_code}: {response.text[:200]}",
                                  status_code=response.status_code)
        try:
            result = response.json()
            return result['choices'][0]['message']['content']
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CompletionError(f"Completion API returned an unexpected body: {e}")

    def complete(self, prompt: str) -> str:
        """
        Request one completion, retrying with growing delay

        Raises:
            CompletionError: every attempt failed, or a non-retryable error occurred
        """
        delay = self.backoff
        last_error = None
        for attempt in range(self.max_attempts):
            try:
                logger.info(f"调用AI补全接口 (尝试 {attempt + 1}/{self.max_attempts})")
                text = self._request_once(prompt)
                logger.info(f"AI响应长度: {len(text)}")
                return text
            except requests.exceptions.Timeout:
                last_error = CompletionError("Completion API timed out")
                logger.error(f"AI补全接口超时 (尝试 {attempt + 1}/{self.max_attempts})")
            except requests.exceptions.RequestException as e:
                last_error = CompletionError(f"Completion API request failed: {e}")
                logger.error(f"AI补全接口异常 (尝试 {attempt + 1}/{self.max_attempts}): {e}")
            except CompletionError as e:
                last_error = e
                logger.error(f"AI补全接口调用失败 (尝试 {attempt + 1}/{self.max_attempts}): {e}")
                if self._is_fatal(str(e), e.status_code):
                    raise

            if attempt < self.max_attempts - 1:
                self.sleep(delay)
                delay *= 1.5

        raise last_error

    def stream_complete(self, prompt: str, on_chunk: Optional[Callable[[str], None]] = None) -> str:
        """
        Stream a completion over server-sent events

        Falls back to complete() when the stream cannot be opened or parsed;
        the fallback text is delivered to on_chunk in one piece.
        """
        try:
            return self._stream_once(prompt, on_chunk)
        except (requests.exceptions.RequestException, CompletionError) as e:
            if isinstance(e, CompletionError) and self._is_fatal(str(e), e.status_code):
                raise
            logger.warning(f"流式响应失败，切换到普通模式: {e}")

        text = self.complete(prompt)
        if on_chunk:
            on_chunk(text)
        return text

    def _stream_once(self, prompt: str, on_chunk: Optional[Callable[[str], None]]) -> str:
        response = requests.post(self.api_url, headers=self._headers(),
                                 json=self._payload(prompt, stream=True),
                                 timeout=self.timeout, stream=True)
        if response.status_code != 200:
            raise CompletionError(f"Completion API returned {response.status_code}: {response.text[:200]}",
                                  status_code=response.status_code)

        parts = []
        for raw_line in response.iter_lines(decode_unicode=True):
            if not raw_line or not raw_line.startswith('data:'):
                continue
            data = raw_line[len('data:'):].strip()
            if data == '[DONE]':
                break
            try:
                event = json.loads(data)
                chunk = event['choices'][0].get('delta', {}).get('content') or ''
            except (ValueError, KeyError, IndexError, AttributeError) as e:
                raise CompletionError(f"Failed to parse stream: {e}")
            if chunk:
                parts.append(chunk)
                if on_chunk:
                    on_chunk(chunk)

        text = ''.join(parts)
        if not text:
            raise CompletionError("Failed to parse stream: empty response")
        return text

    def generate_schema_sql(self, description: str, settings: Optional[Settings] = None,
                            on_chunk: Optional[Callable[[str], None]] = None) -> str:
        """描述 -> 完整的建表SQL"""
        prompt = build_schema_prompt(description, settings)
        if on_chunk:
            text = self.stream_complete(prompt, on_chunk)
        else:
            text = self.complete(prompt)
        sql = extract_sql(text)
        if not sql:
            raise CompletionError("AI response did not contain any SQL")
        return sql
