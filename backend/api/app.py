from typing import Any, Dict, Optional
from fastapi import FastAPI, status, HTTPException, Depends, Path, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
import uvicorn
import os
from backend.mongo.db import connect_to_mongo, close_mongo_connection
from backend.auth.basic import basic_auth
from backend.api.services.person_query import MIN_PAGE_SIZE, MAX_PAGE_SIZE, DEFAULT_PAGE_SIZE
from backend.api.services.person_service import PersonService
from backend.utils.cpf_utils import CPFUtils

logger = logging.getLogger(__name__)

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "3000"))

app = FastAPI(title="Persons API", version="1.0.0")

person_service = PersonService()


# Conexão MongoDB no ciclo de vida da aplicação
@app.on_event("startup")
async def on_startup() -> None:
    """
    Evento de inicialização da API.
    Conecta ao MongoDB e garante os índices.
    """
    logger.info("Iniciando evento de startup da API")
    await connect_to_mongo()
    logger.info("Conexão com MongoDB estabelecida")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    logger.info("Iniciando evento de shutdown da API")
    await close_mongo_connection()
    logger.info("Conexão com MongoDB encerrada")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # parâmetros de query/path com tipo inválido (ex.: page=abc) seguem o mesmo 400 das demais validações
    logger.warning(f"Parâmetros inválidos em {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Erro não tratado em {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Erro interno do servidor"})


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/")
async def root(_: str = Depends(basic_auth)) -> dict:
    """
    Endpoint de status da API (usado pelo console para validar credenciais).
    Retorno:
        dict: status da API
    """
    logger.info("Endpoint / chamado, status=ok")
    return {"status": "ok"}


# Endpoints Persons (prefixo /api/v1)
PERSON_NOT_FOUND = "Pessoa não encontrada"


#########
@app.get("/api/v1/persons")
async def list_persons(
    page: int = Query(1, description="Página (a partir de 1)"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, description="Itens por página (1 a 100)"),
    filtro: Optional[str] = Query(None, alias="filter", description="Busca em nome, email ou CPF"),
    _: str = Depends(basic_auth),
) -> Dict[str, Any]:
    """
    Lista pessoas ativas com paginação e filtro.
    Parâmetros:
        page (int): página
        page_size (int): tamanho da página
        filtro (str, opcional): substring de nome, email ou CPF (apenas dígitos)
        _: autenticação básica
    Retorno:
        dict: items, total, page, page_size, total_pages
    """
    if page < 1:
        logger.warning(f"Página inválida: page={page}")
        raise HTTPException(status_code=400, detail="Página deve ser maior que zero")
    if page_size < MIN_PAGE_SIZE or page_size > MAX_PAGE_SIZE:
        logger.warning(f"Tamanho de página inválido: page_size={page_size}")
        raise HTTPException(status_code=400, detail=f"Tamanho da página deve estar entre {MIN_PAGE_SIZE} e {MAX_PAGE_SIZE}")
    result = await person_service.list_persons(page, page_size, filtro)
    return result.to_dict()


#########
@app.get("/api/v1/persons/cpf/{cpf}")
async def get_person_by_cpf(cpf: str, _: str = Depends(basic_auth)) -> Dict[str, Any]:
    logger.info(f"Consulta de pessoa por CPF: cpf={cpf}")
    person = await person_service.get_by_cpf(cpf)
    if person is None:
        raise HTTPException(status_code=404, detail=PERSON_NOT_FOUND)
    return person


#########
@app.get("/api/v1/persons/check-cpf/{cpf}")
async def check_cpf(
    cpf: str,
    exclude_id: Optional[int] = Query(None, description="ID ignorado na verificação"),
    _: str = Depends(basic_auth),
) -> Dict[str, bool]:
    """
    Verifica se o CPF já pertence a outra pessoa ativa.
    Parâmetros:
        cpf (str): CPF com ou sem formatação
        exclude_id (int, opcional): id da própria pessoa, em atualizações
    Retorno:
        dict: {"exists": bool}
    """
    exists = await person_service.exists_by_cpf(cpf, exclude_id)
    logger.info(f"Verificação de CPF: cpf={cpf}, exclude_id={exclude_id}, exists={exists}")
    return {"exists": exists}


#########
@app.get("/api/v1/persons/{person_id}")
async def get_person(person_id: int = Path(..., description="ID da pessoa"), _: str = Depends(basic_auth)) -> Dict[str, Any]:
    logger.info(f"Consulta de pessoa: person_id={person_id}")
    person = await person_service.get_by_id(person_id)
    if person is None:
        raise HTTPException(status_code=404, detail=PERSON_NOT_FOUND)
    return person


#########
@app.post("/api/v1/persons", status_code=status.HTTP_201_CREATED)
async def create_person(payload: Dict[str, Any], _: str = Depends(basic_auth)) -> Dict[str, Any]:
    """
    Cadastra uma pessoa.
    Parâmetros:
        payload (dict): name, birth_date e cpf obrigatórios; sex, email,
            birthplace e nationality opcionais
        _: autenticação básica
    Retorno:
        dict: pessoa criada
    """
    person = await person_service.create_person(payload)
    logger.info(f"Pessoa cadastrada: id={person['id']}")
    return person


#########
@app.put("/api/v1/persons/{person_id}")
async def update_person(payload: Dict[str, Any], person_id: int = Path(..., description="ID da pessoa"), _: str = Depends(basic_auth)) -> Dict[str, Any]:
    person = await person_service.update_person(person_id, payload)
    if person is None:
        raise HTTPException(status_code=404, detail=PERSON_NOT_FOUND)
    return person


#########
@app.delete("/api/v1/persons/{person_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_person(person_id: int = Path(..., description="ID da pessoa"), _: str = Depends(basic_auth)) -> None:
    """
    Remove (logicamente) uma pessoa pelo ID.
    """
    logger.info(f"Solicitação de remoção de pessoa: person_id={person_id}")
    if not await person_service.remove_person(person_id):
        raise HTTPException(status_code=404, detail=PERSON_NOT_FOUND)
    return None


#########
@app.get("/api/v1/cpf/{cpf}")
async def validate_cpf(cpf: str, _: str = Depends(basic_auth)) -> Dict[str, Any]:
    """
    Valida e formata um CPF sem consultar o cadastro.
    Retorno:
        dict: cpf normalizado, valid, formatted
    """
    valid = CPFUtils.is_valid_cpf(cpf)
    logger.info(f"Validação de CPF: cpf={cpf}, valid={valid}")
    return {"cpf": CPFUtils.normalize_cpf(cpf), "valid": valid, "formatted": CPFUtils.format_cpf(cpf)}


######### ------------------------------ #########
if __name__ == "__main__":
    """
    Inicializa o servidor Uvicorn para rodar a API.
    """
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"), format="%(asctime)s %(levelname)s %(name)s %(message)s")
    logger.info(f"Starting Uvicorn server on {API_HOST}:{API_PORT}")
    uvicorn.run(app, host=API_HOST, port=API_PORT)
