"""
Serviço de pessoas: encapsula validação, persistência e consultas do cadastro.
Facilita testes, manutenção e reuso pela camada HTTP.
"""
from typing import Any, Dict, List, Optional
from datetime import date, datetime
import logging
import os
import re

from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from backend.api.services.person_query import PageResult, paginate_persons, to_response
from backend.mongo.db import PERSONS_COLLECTION, get_collection, next_sequence
from backend.utils.cpf_utils import CPFUtils

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

NAME_MAX_LENGTH = 200
TEXT_MAX_LENGTH = 100
SEX_CHOICES = ("M", "F", "O")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
OPTIONAL_TEXT_FIELDS = ("birthplace", "nationality")


class PersonService:
    def __init__(self, logger=None):
        """
        Inicializa o serviço de pessoas.
        Parâmetros:
            logger (logging.Logger, opcional): Logger para logs
        """
        if logger is None:
            logger = logging.getLogger("person_service")
            logger.setLevel(LOG_LEVEL)
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
            if not logger.hasHandlers():
                logger.addHandler(handler)
        self.logger = logger

    # ------------------- Validação de payload -------------------
    def _bad_request(self, detail: str, payload: Dict[str, Any]) -> HTTPException:
        self.logger.warning(f"Payload inválido ({detail}): {payload}")
        return HTTPException(status_code=400, detail=detail)

    def _parse_birth_date(self, value: Any, payload: Dict[str, Any]) -> datetime:
        if not isinstance(value, str):
            raise self._bad_request("birth_date deve ser uma data no formato AAAA-MM-DD", payload)
        try:
            # aceita data ou data/hora ISO; qualquer sufixo fora do padrão é rejeitado
            birth = datetime.fromisoformat(value).date()
        except ValueError:
            raise self._bad_request("birth_date deve ser uma data no formato AAAA-MM-DD", payload)
        if birth > date.today():
            raise self._bad_request("birth_date não pode estar no futuro", payload)
        # BSON não armazena date puro
        return datetime(birth.year, birth.month, birth.day)

    def _clean_optional_fields(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Valida os campos opcionais presentes no payload.
        Retorno:
            dict: campos prontos para persistir (strings vazias viram None)
        """
        fields: Dict[str, Any] = {}
        if "sex" in payload:
            sex = payload["sex"] or None
            if sex is not None and sex not in SEX_CHOICES:
                raise self._bad_request("sex deve ser M, F ou O", payload)
            fields["sex"] = sex
        if "email" in payload:
            email = payload["email"] or None
            if email is not None:
                if not isinstance(email, str) or not EMAIL_RE.match(email):
                    raise self._bad_request("email deve ter formato válido", payload)
                if len(email) > TEXT_MAX_LENGTH:
                    raise self._bad_request(f"email deve ter no máximo {TEXT_MAX_LENGTH} caracteres", payload)
            fields["email"] = email
        for key in OPTIONAL_TEXT_FIELDS:
            if key in payload:
                value = payload[key] or None
                if value is not None and (not isinstance(value, str) or len(value) > TEXT_MAX_LENGTH):
                    raise self._bad_request(f"{key} deve ser texto com no máximo {TEXT_MAX_LENGTH} caracteres", payload)
                fields[key] = value
        if payload.get("birth_date") is not None:
            fields["birth_date"] = self._parse_birth_date(payload["birth_date"], payload)
        return fields

    def _check_name(self, name: Any, payload: Dict[str, Any]) -> str:
        if not isinstance(name, str) or not name.strip():
            raise self._bad_request("name é obrigatório", payload)
        if len(name) > NAME_MAX_LENGTH:
            raise self._bad_request(f"name deve ter no máximo {NAME_MAX_LENGTH} caracteres", payload)
        return name.strip()

    # ------------------- Consultas -------------------
    async def _active_records(self) -> List[Dict[str, Any]]:
        coll = get_collection(PERSONS_COLLECTION)
        return [doc async for doc in coll.find({"active": True}).sort("_id", 1)]

    async def list_persons(self, page: int = 1, page_size: int = 10, filtro: Optional[str] = None) -> PageResult:
        """
        Lista pessoas ativas com paginação e filtro.
        Parâmetros:
            page (int): página (>= 1)
            page_size (int): itens por página (1..100)
            filtro (str, opcional): busca em nome, email e CPF
        Retorno:
            PageResult: página pedida
        """
        records = await self._active_records()
        result = paginate_persons(records, page, page_size, filtro)
        self.logger.info(f"Listagem de pessoas: page={result.page}, page_size={page_size}, filtro={filtro!r}, total={result.total}")
        return result

    async def get_by_id(self, person_id: int) -> Optional[Dict[str, Any]]:
        coll = get_collection(PERSONS_COLLECTION)
        doc = await coll.find_one({"_id": person_id, "active": True})
        if not doc:
            self.logger.warning(f"Pessoa não encontrada: id={person_id}")
            return None
        return to_response(doc)

    async def get_by_cpf(self, cpf: str) -> Optional[Dict[str, Any]]:
        cpf_norm = CPFUtils.normalize_cpf(cpf)
        coll = get_collection(PERSONS_COLLECTION)
        doc = await coll.find_one({"cpf": cpf_norm, "active": True})
        if not doc:
            self.logger.warning(f"Pessoa não encontrada: cpf={cpf_norm}")
            return None
        return to_response(doc)

    async def exists_by_cpf(self, cpf: str, exclude_id: Optional[int] = None) -> bool:
        """
        Verifica se algum registro ativo já usa o CPF.
        Parâmetros:
            cpf (str): CPF com ou sem formatação
            exclude_id (int, opcional): id ignorado na verificação (atualização do próprio registro)
        Retorno:
            bool: True se outro registro ativo usa o CPF
        """
        cpf_norm = CPFUtils.normalize_cpf(cpf)
        if not cpf_norm:
            return False
        query: Dict[str, Any] = {"cpf": cpf_norm, "active": True}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        coll = get_collection(PERSONS_COLLECTION)
        found = await coll.find_one(query)
        self.logger.debug(f"Verificação de CPF: cpf={cpf_norm}, exclude_id={exclude_id}, existe={found is not None}")
        return found is not None

    # ------------------- Escrita -------------------
    async def create_person(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Cadastra uma pessoa: valida dados, CPF e unicidade, e persiste.
        Parâmetros:
            payload (dict): dados da pessoa
        Retorno:
            dict: pessoa criada (projeção de resposta)
        """
        self.logger.info(f"Recebendo payload de cadastro: {payload}")
        name = self._check_name(payload.get("name"), payload)
        if payload.get("birth_date") is None:
            raise self._bad_request("birth_date é obrigatório", payload)
        cpf = payload.get("cpf")
        if not isinstance(cpf, str) or not cpf.strip():
            raise self._bad_request("cpf é obrigatório", payload)
        fields = self._clean_optional_fields(payload)

        if not CPFUtils.is_valid_cpf(cpf):
            self.logger.warning(f"CPF inválido detectado: cpf={cpf}")
            raise HTTPException(status_code=422, detail="CPF inválido (digitos verificadores ou formato)")
        cpf_norm = CPFUtils.normalize_cpf(cpf)
        if await self.exists_by_cpf(cpf_norm):
            self.logger.warning(f"CPF já cadastrado: cpf={cpf_norm}")
            raise HTTPException(status_code=409, detail="CPF já cadastrado")

        now = datetime.utcnow()
        doc = {
            "_id": await next_sequence(PERSONS_COLLECTION),
            "name": name,
            "sex": None,
            "email": None,
            "birthplace": None,
            "nationality": None,
            **fields,
            "cpf": cpf_norm,
            "created_at": now,
            "updated_at": now,
            "active": True,
        }
        coll = get_collection(PERSONS_COLLECTION)
        try:
            await coll.insert_one(doc)
        except DuplicateKeyError as exc:
            key_pattern = (exc.details or {}).get("keyPattern") or {}
            if "cpf" not in key_pattern:
                # colisão de _id: sequência fora de sincronia com a coleção
                self.logger.error(f"Chave duplicada fora do CPF na inserção: id={doc['_id']}, key={key_pattern}")
                raise
            # cadastro concorrente com o mesmo CPF
            self.logger.warning(f"CPF duplicado na inserção: cpf={cpf_norm}")
            raise HTTPException(status_code=409, detail="CPF já cadastrado")
        self.logger.info(f"Pessoa criada: id={doc['_id']}, name={name}, cpf={cpf_norm}")
        return to_response(doc)

    async def update_person(self, person_id: int, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Atualiza parcialmente uma pessoa ativa. O CPF não pode ser alterado.
        Parâmetros:
            person_id (int): id da pessoa
            payload (dict): campos a atualizar
        Retorno:
            dict: pessoa atualizada, ou None se não existir
        """
        self.logger.info(f"Recebendo payload de atualização: id={person_id}, payload={payload}")
        coll = get_collection(PERSONS_COLLECTION)
        current = await coll.find_one({"_id": person_id, "active": True})
        if not current:
            self.logger.warning(f"Tentativa de atualizar pessoa inexistente: id={person_id}")
            return None

        if payload.get("cpf") is not None and CPFUtils.normalize_cpf(payload["cpf"]) != current["cpf"]:
            raise self._bad_request("cpf não pode ser alterado", payload)
        # null = campo não informado; "" limpa o campo
        changes = {key: value for key, value in payload.items() if value is not None}
        update = self._clean_optional_fields(changes)
        # nome em branco é ignorado
        name = changes.get("name")
        if isinstance(name, str) and name.strip():
            update["name"] = self._check_name(name, payload)
        update["updated_at"] = datetime.utcnow()

        res = await coll.update_one({"_id": person_id, "active": True}, {"$set": update})
        if res.matched_count == 0:
            # removida entre a leitura e a escrita
            self.logger.warning(f"Pessoa removida durante a atualização: id={person_id}")
            return None
        current.update(update)
        self.logger.info(f"Pessoa atualizada: id={person_id}, campos={sorted(update)}")
        return to_response(current)

    async def remove_person(self, person_id: int) -> bool:
        """Remoção lógica: marca a pessoa como inativa."""
        coll = get_collection(PERSONS_COLLECTION)
        res = await coll.update_one(
            {"_id": person_id, "active": True},
            {"$set": {"active": False, "updated_at": datetime.utcnow()}},
        )
        if res.matched_count == 0:
            self.logger.warning(f"Tentativa de remover pessoa inexistente: id={person_id}")
            return False
        self.logger.info(f"Pessoa removida: id={person_id}")
        return True
