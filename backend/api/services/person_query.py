"""
Planejador de consultas de pessoas: filtro, ordenação e paginação da listagem.
Funções puras sobre documentos de pessoa (dicts no formato da coleção `persons`),
sem acesso ao banco. O serviço carrega os registros ativos e delega para cá.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Union
import math

from backend.utils.cpf_utils import CPFUtils

MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10


@dataclass
class PageResult:
    items: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    total_pages: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
        }


def _as_date(value: Union[date, datetime]) -> date:
    # BSON não tem tipo date: birth_date chega do Mongo como datetime à meia-noite
    return value.date() if isinstance(value, datetime) else value


def calculate_age(birth_date: Union[date, datetime], today: Optional[date] = None) -> int:
    """
    Calcula a idade em anos completos.
    Parâmetros:
        birth_date (date): data de nascimento
        today (date, opcional): data de referência (padrão: hoje)
    Retorno:
        int: idade; no dia do aniversário a idade nova já conta
    """
    birth = _as_date(birth_date)
    today = _as_date(today) if today is not None else date.today()
    age = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        age -= 1
    return age


def matches_filter(record: Dict[str, Any], filtro: Optional[str]) -> bool:
    """
    Verifica se o registro casa com o filtro (substring, OU entre os campos).
    Nome e email comparados sem diferenciar maiúsculas; CPF comparado com o
    filtro literal contra a forma canônica (um filtro com pontuação não casa).
    """
    if filtro is None or not filtro.strip():
        return True
    filtro_lower = filtro.lower()
    if filtro_lower in (record.get("name") or "").lower():
        return True
    email = record.get("email")
    if email is not None and filtro_lower in email.lower():
        return True
    return filtro in (record.get("cpf") or "")


def to_response(record: Dict[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
    """Projeção de resposta de uma pessoa (idade calculada, CPF formatado)."""
    birth = _as_date(record["birth_date"])
    return {
        "id": record["_id"],
        "name": record["name"],
        "sex": record.get("sex"),
        "email": record.get("email"),
        "birth_date": birth.isoformat(),
        "age": calculate_age(birth, today),
        "birthplace": record.get("birthplace"),
        "nationality": record.get("nationality"),
        "cpf": CPFUtils.format_cpf(record["cpf"]),
        "created_at": _isoformat(record.get("created_at")),
        "updated_at": _isoformat(record.get("updated_at")),
    }


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def paginate_persons(
    records: Iterable[Dict[str, Any]],
    page: int,
    page_size: int,
    filtro: Optional[str] = None,
    today: Optional[date] = None,
) -> PageResult:
    """
    Seleciona a página pedida entre os registros ativos que casam com o filtro.
    Parâmetros:
        records: documentos de pessoa (inativos são descartados aqui também)
        page (int): página, a partir de 1 (valores < 1 tratados como 1)
        page_size (int): tamanho da página (validado pela camada HTTP)
        filtro (str, opcional): substring buscada em nome, email e CPF
        today (date, opcional): referência para o cálculo de idade
    Retorno:
        PageResult: itens da página, total filtrado e total de páginas.
        Página fora do intervalo retorna itens vazios com totais corretos.
    """
    page = max(page, 1)
    selected = [r for r in records if r.get("active") and matches_filter(r, filtro)]
    selected.sort(key=lambda r: r["_id"])

    total = len(selected)
    total_pages = math.ceil(total / page_size) if total else 0
    offset = (page - 1) * page_size
    items = [to_response(r, today) for r in selected[offset:offset + page_size]]
    return PageResult(items=items, total=total, page=page, page_size=page_size, total_pages=total_pages)
