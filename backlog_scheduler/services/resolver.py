import json
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Sequence

from loguru import logger

from ..gemini.client import GeminiClient, GenerationError
from ..models.entities import Issue

DEPENDENCY_PROMPT = (
    "As a PI planner, analyse the following issues and identify which issues must be done "
    "before others. Return only a JSON object where each key is an issue 'id' and its value "
    "is the list of issue ids it depends on. Only use ids from the input. Issues without "
    "dependencies may be omitted."
)


class DependencyResolver(ABC):
    """Fonte do mapeamento de dependências consumido pelo agendador"""

    @abstractmethod
    def resolve(self, issues: Sequence[Issue]) -> Dict[str, List[str]]:
        """
        Resolve as dependências entre as issues

        Raises:
            GenerationError: Se a fonte de dependências estiver indisponível
        """


class EmptyDependencyResolver(DependencyResolver):
    """Resolver sem dependências conhecidas"""

    def resolve(self, issues: Sequence[Issue]) -> Dict[str, List[str]]:
        return {}


class StaticDependencyResolver(DependencyResolver):
    """Dependências fixas, carregadas de arquivo de configuração"""

    def __init__(self, dependencies: Mapping[str, List[str]]):
        self.dependencies = {str(k): list(v) for k, v in dependencies.items()}

    def resolve(self, issues: Sequence[Issue]) -> Dict[str, List[str]]:
        logger.info(f"Usando {len(self.dependencies)} dependências configuradas")
        return {k: list(v) for k, v in self.dependencies.items()}


class GeminiDependencyResolver(DependencyResolver):
    """Infere as dependências entre issues com o serviço de geração de texto"""

    def __init__(self, client: GeminiClient):
        self.client = client

    def resolve(self, issues: Sequence[Issue]) -> Dict[str, List[str]]:
        description = json.dumps(
            [
                {
                    "id": issue.id,
                    "type": issue.type.value,
                    "summary": issue.summary,
                    "description": issue.description,
                }
                for issue in issues
            ],
            ensure_ascii=False,
        )
        logger.info(f"Solicitando inferência de dependências para {len(issues)} issues")
        data = self.client.generate_json(DEPENDENCY_PROMPT, description)

        if not isinstance(data, dict):
            raise GenerationError(
                f"Mapa de dependências inválido retornado pelo modelo: {type(data).__name__}"
            )
        # Valores inválidos são descartados depois, no saneamento do grafo
        return data
