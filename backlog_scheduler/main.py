import json
from pathlib import Path
from typing import Optional
import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console

from backlog_scheduler.models.config import SetupConfig, DependenciesConfig
from backlog_scheduler.models.entities import Board
from backlog_scheduler.azure.client import AzureBoardsClient
from backlog_scheduler.gemini.client import GeminiClient, GenerationError
from backlog_scheduler.services.integration import AutoSchedulingService, SchedulingUnavailableError
from backlog_scheduler.services.planning import PlanningService
from backlog_scheduler.services.report import ScheduleReportGenerator
from backlog_scheduler.services.resolver import (
    DependencyResolver,
    EmptyDependencyResolver,
    GeminiDependencyResolver,
    StaticDependencyResolver,
)
from backlog_scheduler.services.store import JsonBoardStore

app = typer.Typer(help="Agendador de Backlog - Quadro de Planejamento")
console = Console()

CONFIG_DIR_OPTION = typer.Option(
    "config",
    help="Diretório com os arquivos de configuração",
    exists=True,
    dir_okay=True,
    file_okay=False
)
LOGS_DIR_OPTION = typer.Option("logs", help="Diretório dos arquivos de log")


def configurar_logger(output_dir: Path = Path("logs")):
    """Configura o sistema de logs"""
    output_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()  # Remove handlers padrão
    logger.add(
        output_dir / "agendador_{time}.log",
        rotation="1 day",
        retention="7 days",
        level="INFO",
        encoding='utf-8'
    )
    logger.add(lambda msg: console.print(msg, style="blue", end=""), level="INFO")


def load_json_file(path: Path) -> dict:
    """
    Carrega um arquivo JSON

    Args:
        path: Caminho do arquivo

    Returns:
        dict: Conteúdo do arquivo
    """
    try:
        return json.loads(path.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Erro ao carregar arquivo {path}: {str(e)}")
        raise typer.Exit(1)


def resolve_path(config_dir: Path, path: str) -> Path:
    """Resolve caminhos relativos a partir do diretório de configuração"""
    candidate = Path(path)
    return candidate if candidate.is_absolute() else config_dir / candidate


def carregar_setup(config_dir: Path) -> SetupConfig:
    """Carrega e valida o setup.json"""
    logger.info(f"Usando diretório de configuração: {config_dir}")
    setup_data = load_json_file(config_dir / "setup.json")
    try:
        return SetupConfig(**setup_data)
    except ValidationError as e:
        logger.error(f"Configuração inválida em {config_dir / 'setup.json'}: {e}")
        raise typer.Exit(1)


def criar_store(config_dir: Path, setup: SetupConfig) -> JsonBoardStore:
    history_file = resolve_path(config_dir, setup.history_file) if setup.history_file else None
    return JsonBoardStore(resolve_path(config_dir, setup.board_file), history_file)


def criar_gerador(setup: SetupConfig) -> Optional[GeminiClient]:
    if not setup.gemini:
        return None
    return GeminiClient(
        api_key=setup.gemini.api_key,
        model=setup.gemini.model,
        timeout=setup.gemini.timeout
    )


def criar_resolver(config_dir: Path, setup: SetupConfig) -> DependencyResolver:
    """Escolhe a fonte de dependências: arquivo fixo, gerador de texto ou nenhuma"""
    if setup.dependencies_file:
        dependencies_data = load_json_file(resolve_path(config_dir, setup.dependencies_file))
        try:
            dependencies = DependenciesConfig(**dependencies_data)
        except ValidationError as e:
            logger.error(f"Arquivo de dependências inválido: {e}")
            raise typer.Exit(1)
        return StaticDependencyResolver(dependencies.dependencies)

    generator = criar_gerador(setup)
    if generator:
        return GeminiDependencyResolver(generator)

    logger.warning("Nenhuma fonte de dependências configurada, agendando sem dependências")
    return EmptyDependencyResolver()


@app.command()
def agendar(config_dir: Path = CONFIG_DIR_OPTION, logs_dir: Path = LOGS_DIR_OPTION):
    """Agenda automaticamente o backlog do quadro nas sprints"""
    configurar_logger(logs_dir)
    logger.info("Iniciando agendamento automático do backlog")

    setup = carregar_setup(config_dir)
    store = criar_store(config_dir, setup)
    board = store.load()

    service = AutoSchedulingService(
        config=setup.scheduling,
        resolver=criar_resolver(config_dir, setup),
        retry_policy=setup.retry,
        audit_log=store.load_history()
    )

    backlog = board.get_backlog()
    try:
        updated, result = service.schedule_board(board)
    except SchedulingUnavailableError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    store.save(updated)
    store.save_history(service.audit_log)

    if result.assignments:
        logger.info("Gerando relatório...")
        report_generator = ScheduleReportGenerator(
            result=result,
            items=service.build_work_items(backlog),
            config=setup.scheduling,
            output_dir=str(resolve_path(config_dir, setup.output_dir)),
            titles={issue.id: issue.summary for issue in backlog}
        )
        report_generator.generate()

    logger.info("Processo concluído com sucesso!")


@app.command("agendar-azure")
def agendar_azure(config_dir: Path = CONFIG_DIR_OPTION, logs_dir: Path = LOGS_DIR_OPTION):
    """Agenda automaticamente o backlog de um time no Azure Boards"""
    configurar_logger(logs_dir)
    setup = carregar_setup(config_dir)
    if not setup.azure_devops:
        logger.error("Configuração do Azure DevOps ausente no setup.json")
        raise typer.Exit(1)
    azure = setup.azure_devops

    logger.info("Conectando ao Azure DevOps...")
    client = AzureBoardsClient(
        organization=azure.organization,
        project=azure.project,
        token=azure.token
    )
    issues = client.get_backlog_issues(azure.area_path, azure.iteration_root)
    iterations = client.get_iterations(azure.iteration_root)

    service = AutoSchedulingService(
        config=setup.scheduling,
        resolver=criar_resolver(config_dir, setup),
        retry_policy=setup.retry
    )
    try:
        result = service.plan(issues, iterations)
    except SchedulingUnavailableError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    logger.info("Atualizando itens no Azure DevOps...")
    try:
        client.apply_schedule(result, [iteration.id for iteration in iterations], azure.iteration_root)
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    if result.assignments:
        ScheduleReportGenerator(
            result=result,
            items=service.build_work_items(issues),
            config=setup.scheduling,
            output_dir=str(resolve_path(config_dir, setup.output_dir)),
            titles={issue.id: issue.summary for issue in issues},
            name=azure.project
        ).generate()

    logger.info("Processo concluído com sucesso!")


def _editar_quadro(config_dir: Path, logs_dir: Path, operacao) -> Board:
    """Carrega o quadro, aplica uma operação de planejamento e salva o resultado"""
    configurar_logger(logs_dir)
    setup = carregar_setup(config_dir)
    store = criar_store(config_dir, setup)
    planning = PlanningService(generator=criar_gerador(setup), retry_policy=setup.retry)

    board = store.load()
    try:
        updated = operacao(planning, board)
    except KeyError as e:
        logger.error(f"Entidade não encontrada: {e}")
        raise typer.Exit(1)
    except GenerationError as e:
        logger.error(str(e))
        console.print("[red]Serviço de geração de texto indisponível, tente novamente mais tarde[/red]")
        raise typer.Exit(1)

    store.save(updated)
    return updated


@app.command("adicionar-requisito")
def adicionar_requisito(
    texto: str = typer.Argument(..., help="Texto do requisito"),
    config_dir: Path = CONFIG_DIR_OPTION,
    logs_dir: Path = LOGS_DIR_OPTION
):
    """Adiciona um requisito bruto ao quadro"""
    _editar_quadro(config_dir, logs_dir, lambda planning, board: planning.add_requirement(board, texto))


@app.command("gerar-epico")
def gerar_epico(
    requisito_id: str = typer.Argument(..., help="Id do requisito"),
    config_dir: Path = CONFIG_DIR_OPTION,
    logs_dir: Path = LOGS_DIR_OPTION
):
    """Transforma um requisito em épico"""
    _editar_quadro(config_dir, logs_dir, lambda planning, board: planning.translate_to_epic(board, requisito_id))


@app.command("refinar-epico")
def refinar_epico(
    epico_id: str = typer.Argument(..., help="Id do épico"),
    config_dir: Path = CONFIG_DIR_OPTION,
    logs_dir: Path = LOGS_DIR_OPTION
):
    """Detalha a descrição de um épico"""
    _editar_quadro(config_dir, logs_dir, lambda planning, board: planning.refine_epic(board, epico_id))


@app.command("gerar-issues")
def gerar_issues(
    epico_id: str = typer.Argument(..., help="Id do épico"),
    config_dir: Path = CONFIG_DIR_OPTION,
    logs_dir: Path = LOGS_DIR_OPTION
):
    """Gera as issues de um épico"""
    _editar_quadro(config_dir, logs_dir, lambda planning, board: planning.generate_issues(board, epico_id))


@app.command()
def historico(
    entidade_id: str = typer.Argument(..., help="Id da issue ou sprint"),
    config_dir: Path = CONFIG_DIR_OPTION
):
    """Mostra o histórico de alterações de uma entidade"""
    setup = carregar_setup(config_dir)
    audit_log = criar_store(config_dir, setup).load_history()

    entries = audit_log.entries_for(entidade_id)
    if not entries:
        console.print(f"Nenhum histórico para {entidade_id}")
        return
    for entry in entries:
        console.print(f"{entry.timestamp.isoformat()} - {entry.action}")


if __name__ == "__main__":
    app()
