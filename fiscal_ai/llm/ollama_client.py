import asyncio
import aiohttp
import time
import logging
from typing import Optional, Dict, Any
from contextlib import asynccontextmanager

from ..config import Settings, settings as default_settings
from ..exceptions import ModelServerError
from .models import LLMRequest, LLMResponse, Message, MessageRole, HealthStatus, ModelClient

logger = logging.getLogger(__name__)


class OllamaClient(ModelClient):
    """Pooled aiohttp client for the Ollama /api/chat endpoint"""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.base_url = self.config.ollama_host.rstrip("/")
        self.model = self.config.ollama_model

        self.semaphore = asyncio.Semaphore(self.config.llm_max_concurrent)
        self._session: Optional[aiohttp.ClientSession] = None
        self._connector: Optional[aiohttp.TCPConnector] = None

        self.metrics = {
            "requests_count": 0,
            "success_count": 0,
            "error_count": 0,
            "total_response_time": 0.0,
            "concurrent_requests": 0,
        }

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self):
        if self._session is None:
            self._connector = aiohttp.TCPConnector(
                limit=self.config.ollama_connection_pool_size,
                limit_per_host=self.config.ollama_connection_pool_limit_per_host,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )

            timeout = aiohttp.ClientTimeout(
                total=self.config.ollama_request_timeout,
                connect=self.config.ollama_connection_timeout,
                sock_read=self.config.ollama_request_timeout
            )

            self._session = aiohttp.ClientSession(
                connector=self._connector,
                timeout=timeout
            )
            logger.info(
                f"Connected to Ollama at {self.base_url} with connection pool "
                f"(size={self.config.ollama_connection_pool_size}, "
                f"per_host={self.config.ollama_connection_pool_limit_per_host})"
            )

    async def close(self):
        if self._session:
            await self._session.close()
            self._session = None
            logger.info("Ollama client connection closed")

    @asynccontextmanager
    async def _get_session(self):
        if self._session is None:
            await self.connect()
        yield self._session

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 600,
    ) -> LLMResponse:
        request = LLMRequest(
            messages=[Message(role=MessageRole.USER, content=user_prompt)],
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return await self.generate(request)

    async def generate(self, request: LLMRequest) -> LLMResponse:
        async with self.semaphore:
            self.metrics["concurrent_requests"] += 1
            start_time = time.time()

            try:
                response = await self._make_request(request)
                self.metrics["success_count"] += 1
                return response
            except Exception as e:
                self.metrics["error_count"] += 1
                logger.error(f"LLM generation error: {e}")
                raise
            finally:
                self.metrics["total_response_time"] += (time.time() - start_time) * 1000
                self.metrics["requests_count"] += 1
                self.metrics["concurrent_requests"] -= 1

    async def _make_request(self, request: LLMRequest) -> LLMResponse:
        start_time = time.time()

        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        for msg in request.messages:
            messages.append({"role": msg.role.value, "content": msg.content})

        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_tokens,
            }
        }

        async with self._get_session() as session:
            async with session.post(f"{self.base_url}/api/chat", json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ModelServerError(response.status, error_text)

                data = await response.json()
                content = data.get("message", {}).get("content", "")

                return LLMResponse(
                    content=content,
                    usage_tokens=data.get("eval_count", 0) + data.get("prompt_eval_count", 0),
                    response_time_ms=(time.time() - start_time) * 1000,
                    model_used=self.model,
                    confidence_score=self._calculate_confidence(data),
                )

    def _calculate_confidence(self, response_data: Dict[str, Any]) -> Optional[float]:
        # Ollama reports no confidence; a completed generation ending normally is trusted moderately
        if response_data.get("done_reason") == "length":
            return 0.5
        if response_data.get("eval_count", 0) > 0:
            return 0.75
        return None

    async def health_check(self) -> HealthStatus:
        start_time = time.time()

        try:
            async with self._get_session() as session:
                async with session.get(f"{self.base_url}/api/tags") as response:
                    if response.status != 200:
                        return HealthStatus(
                            service="ollama",
                            status="unhealthy",
                            response_time_ms=(time.time() - start_time) * 1000,
                            concurrent_requests=self.metrics["concurrent_requests"],
                            last_check=time.time(),
                            details={"error": f"API returned status {response.status}"}
                        )

                    data = await response.json()
                    models = [model["name"] for model in data.get("models", [])]
                    model_loaded = self.model in models

                    return HealthStatus(
                        service="ollama",
                        status="healthy" if model_loaded else "degraded",
                        response_time_ms=(time.time() - start_time) * 1000,
                        concurrent_requests=self.metrics["concurrent_requests"],
                        last_check=time.time(),
                        details={
                            "model_loaded": model_loaded,
                            "available_models": models,
                            "target_model": self.model
                        }
                    )

        except Exception as e:
            return HealthStatus(
                service="ollama",
                status="unhealthy",
                response_time_ms=(time.time() - start_time) * 1000,
                concurrent_requests=self.metrics["concurrent_requests"],
                last_check=time.time(),
                details={"error": str(e)}
            )
