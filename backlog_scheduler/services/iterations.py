from typing import Sequence

from ..models.entities import Iteration


def create_iteration(iterations: Sequence[Iteration], prefix: str = "Sprint") -> Iteration:
    """
    Cria a próxima sprint de uma sequência

    O ordinal é o tamanho atual da sequência e o nome é derivado dele. Id e nome
    são únicos dentro da sequência: em caso de conflito o número é incrementado
    até ficar livre. A sequência recebida não é alterada.

    Args:
        iterations: Sprints existentes
        prefix: Prefixo do nome da sprint

    Returns:
        Iteration: Nova sprint
    """
    ordinal = len(iterations)
    existing_ids = {iteration.id for iteration in iterations}
    existing_names = {iteration.name for iteration in iterations}

    number = ordinal + 1
    while f"sprint-{number}" in existing_ids:
        number += 1

    name_number = ordinal + 1
    # Backends como o Azure Boards usam o nome no caminho da iteração
    while f"{prefix} {name_number}" in existing_names:
        name_number += 1

    return Iteration(id=f"sprint-{number}", name=f"{prefix} {name_number}", ordinal=ordinal)
