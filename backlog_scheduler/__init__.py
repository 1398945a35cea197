"""
Agendador de Backlog

Este pacote implementa o quadro de planejamento de backlog: requisitos viram épicos e issues
e o agendador automático distribui as issues não planejadas pelas sprints, respeitando as
dependências entre elas e a velocidade configurada do time.
"""

__version__ = "1.0.0"
