import logging
from typing import Dict, List, Optional, Protocol

from openai import AzureOpenAI, OpenAI, OpenAIError

from app.config import Settings
from app.errors import UpstreamError

logger = logging.getLogger(__name__)

MAX_TOKENS = 800


class InferenceClient(Protocol):
    def run(
        self,
        model_id: str,
        prompt: Optional[str] = None,
        messages: Optional[List[Dict[str, str]]] = None,
        modality: str = "text",
    ) -> Dict[str, str]:
        """Returns {"response": str} for text or {"image_b64": str} for images."""
        ...


class OpenAIInference:
    """
    Inference over any OpenAI-compatible endpoint (OpenAI, Azure OpenAI,
    Workers AI's /ai/v1 gateway, ...). Model ids are passed through as-is.
    """

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIInference":
        if settings.azure_openai_endpoint:
            if not settings.azure_openai_api_key:
                raise ValueError("AZURE_OPENAI_API_KEY environment variable is not set")
            client = AzureOpenAI(
                api_key=settings.azure_openai_api_key,
                azure_endpoint=settings.azure_openai_endpoint,
                api_version=settings.azure_openai_api_version,
            )
        else:
            if not settings.openai_api_key:
                raise ValueError("OPENAI_API_KEY environment variable is not set")
            client = OpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
            )
        return cls(client)

    def run(
        self,
        model_id: str,
        prompt: Optional[str] = None,
        messages: Optional[List[Dict[str, str]]] = None,
        modality: str = "text",
    ) -> Dict[str, str]:
        if modality == "image":
            return {"image_b64": self._generate_image(model_id, prompt or "")}

        if messages is None:
            messages = [{"role": "user", "content": prompt or ""}]
        return {"response": self._complete(model_id, messages)}

    def _complete(self, model_id: str, messages: List[Dict[str, str]]) -> str:
        try:
            response = self.client.chat.completions.create(
                model=model_id,
                messages=messages,
                max_tokens=MAX_TOKENS,
            )
        except OpenAIError as e:
            raise UpstreamError(f"Inference chat call failed ({model_id}): {e}") from e

        return response.choices[0].message.content or ""

    def _generate_image(self, model_id: str, prompt: str) -> str:
        try:
            response = self.client.images.generate(
                model=model_id,
                prompt=prompt,
                response_format="b64_json",
            )
        except OpenAIError as e:
            raise UpstreamError(f"Inference image call failed ({model_id}): {e}") from e

        image_b64 = response.data[0].b64_json if response.data else None
        if not image_b64:
            raise UpstreamError(f"Inference image call returned no image ({model_id})")
        return image_b64
