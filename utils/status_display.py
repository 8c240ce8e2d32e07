"""
Resumo final da execução, no mesmo box usado no console do orquestrador.
"""
from typing import Any, Dict, List


def _linha(texto: str) -> str:
    return f"║ {texto:<58} ║\n"


def get_resumo_json(resultado, registros: List) -> Dict[str, Any]:
    """Retorna resumo em formato JSON (útil para CI)."""
    return {
        "aprovada": resultado.passed,
        "suites": list(resultado.suites),
        "tentativas": len(resultado.tentativas),
        "falhas": len(resultado.falhas),
        "suprimidas": len(resultado.suprimidas),
        "testes_retentados": len(registros),
    }


def formatar_resumo(resultado, registros: List) -> str:
    """Formata o box de resumo."""
    resumo = get_resumo_json(resultado, registros)
    status = "✅ APROVADA" if resumo["aprovada"] else "❌ REPROVADA"

    box = (
        "\n"
        "╔════════════════════════════════════════════════════════════╗\n"
        + _linha(f"Execução {status}")
        + _linha(f"🧪 Tentativas: {resumo['tentativas']:5d}  │  Suites: {len(resumo['suites'])}")
        + _linha(f"❌ Falhas: {resumo['falhas']:5d}      │  🔁 Suprimidas: {resumo['suprimidas']}")
        + _linha(f"📋 Testes retentados: {resumo['testes_retentados']}")
    )
    for registro in registros:
        box += _linha(
            f"  - {registro.identity.nome} ({registro.attempted_retries}/{registro.max_retries_allowed})"
        )
    box += "╚════════════════════════════════════════════════════════════╝"
    return box
