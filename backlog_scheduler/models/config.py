from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class SchedulingConfig(BaseModel):
    """Configuração do agendamento automático"""

    velocity: int = Field(..., gt=0)
    sprint_length_weeks: int = Field(default=2, gt=0)
    developers: int = Field(default=1, gt=0)


class RetryPolicy(BaseModel):
    """Política de novas tentativas para chamadas ao serviço de geração de texto"""

    max_attempts: int = Field(default=4, ge=1)
    initial_delay: float = Field(default=1.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1)

    def delay_for(self, retry_number: int) -> float:
        """Retorna a espera (em segundos) antes da tentativa de número `retry_number`"""
        return self.initial_delay * self.backoff_factor ** (retry_number - 1)


class GeminiConfig(BaseModel):
    """Configuração do serviço de geração de texto"""

    api_key: str
    model: str = "gemini-2.5-flash"
    timeout: float = Field(default=60, gt=0)


class AzureDevOpsConfig(BaseModel):
    """Configuração do Azure DevOps"""

    organization: str
    project: str
    token: str
    area_path: str
    iteration_root: str


class SetupConfig(BaseModel):
    """Configuração principal do sistema"""

    scheduling: SchedulingConfig
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    board_file: str
    history_file: Optional[str] = None
    dependencies_file: Optional[str] = None
    output_dir: str = "output"
    gemini: Optional[GeminiConfig] = None
    azure_devops: Optional[AzureDevOpsConfig] = None

    @field_validator("board_file")
    @classmethod
    def validate_board_file(cls, v: str) -> str:
        """Garante que o arquivo do quadro é um JSON"""
        if not v.endswith(".json"):
            raise ValueError(f"Arquivo do quadro inválido: {v}. Extensão esperada: .json")
        return v


class DependenciesConfig(BaseModel):
    """Configuração de dependências entre issues"""

    dependencies: Dict[str, List[str]]
