from typing import Any, Dict, Iterable, List, Mapping, Optional, Set
from loguru import logger

from ..models.entities import WorkItem


def sanitize_dependency_graph(
    raw: Optional[Mapping[Any, Any]], items: Iterable[WorkItem]
) -> Dict[str, Set[str]]:
    """
    Valida o mapeamento bruto de dependências contra o conjunto de itens

    Referências a itens fora do conjunto e auto-referências são descartadas.
    Itens sem entrada no mapeamento ficam sem pré-requisitos. Nunca falha: no
    pior caso retorna um grafo sem dependências.

    Args:
        raw: Mapeamento id -> lista de ids pré-requisitos
        items: Itens que serão agendados

    Returns:
        Dict[str, Set[str]]: Grafo de dependências saneado
    """
    item_ids = {item.id for item in items}
    graph: Dict[str, Set[str]] = {}

    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning(f"Mapa de dependências inválido ({type(raw).__name__}), ignorando")
        return graph

    for key, value in raw.items():
        item_id = str(key)
        if item_id not in item_ids:
            logger.debug(f"Dependências do item desconhecido {item_id} descartadas")
            continue

        prerequisites = _as_id_list(value)
        valid = set()
        for prerequisite in prerequisites:
            if prerequisite == item_id:
                logger.debug(f"Auto-referência descartada no item {item_id}")
            elif prerequisite not in item_ids:
                logger.debug(f"Dependência {prerequisite} do item {item_id} fora do backlog, descartada")
            else:
                valid.add(prerequisite)

        if valid:
            graph.setdefault(item_id, set()).update(valid)

    logger.info(
        f"Grafo de dependências saneado: {len(graph)} itens com pré-requisitos, "
        f"{sum(len(deps) for deps in graph.values())} dependências"
    )
    return graph


def _as_id_list(value: Any) -> List[str]:
    """Converte o valor bruto de uma entrada em uma lista de ids"""
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return [str(value)]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [
            str(v) for v in value
            if isinstance(v, (str, int)) and not isinstance(v, bool)
        ]
    return []
