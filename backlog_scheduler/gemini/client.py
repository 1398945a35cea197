import json
from typing import Any

import requests
from loguru import logger

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GenerationError(Exception):
    """Falha na chamada ao serviço de geração de texto"""


class GeminiClient:
    """Cliente para o serviço de geração de texto (Gemini)"""

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash", timeout: float = 60,
                 base_url: str = GEMINI_BASE_URL):
        """
        Inicializa o cliente

        Args:
            api_key: Chave de acesso à API
            model: Nome do modelo
            timeout: Timeout das requisições em segundos
            base_url: URL base da API
        """
        if not api_key:
            raise ValueError("Chave da API de geração de texto não configurada")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

        logger.info(f"Cliente de geração de texto inicializado para o modelo {model}")

    def generate_json(self, system_prompt: str, user_query: str) -> Any:
        """
        Envia o prompt ao modelo e interpreta a resposta como JSON

        Args:
            system_prompt: Instruções para o modelo
            user_query: Conteúdo a ser processado

        Returns:
            Any: Resposta do modelo já convertida de JSON

        Raises:
            GenerationError: Se a chamada falhar ou a resposta não for um JSON válido
        """
        prompt = f"{system_prompt}\n\nInput: {user_query}\n\nResponse (in JSON format):"
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": 0.1,
                "topK": 1,
                "topP": 0.1,
            },
        }

        try:
            response = requests.post(
                url,
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise GenerationError(f"Falha na chamada ao modelo {self.model}: {e}") from e

        text = self._extract_text(data)
        logger.debug(f"Resposta do modelo: {text}")
        cleaned = strip_code_fences(text)

        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.error(f"Resposta do modelo não é um JSON válido: {cleaned}")
            raise GenerationError("Resposta inválida do modelo (JSON esperado)") from e

    def _extract_text(self, data: Any) -> str:
        """Extrai o texto do primeiro candidato da resposta"""
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError("Não foi possível extrair o texto da resposta do modelo") from e
        if not isinstance(text, str):
            raise GenerationError(f"Texto da resposta do modelo inválido: {type(text).__name__}")
        return text


def strip_code_fences(text: str) -> str:
    """Remove os marcadores de bloco de código Markdown da resposta"""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()
