import streamlit as st
import httpx
import os
from datetime import date
from typing import Optional, Tuple, Any, Dict

from backend.utils.cpf_utils import CPFUtils

API_BASE = os.getenv("API_BASE", "http://api:3000")  # service name in docker network (docker compose network)
PERSONS_URL = f"{API_BASE}/api/v1/persons"
SEX_OPTIONS = {"": "Não informado", "M": "Masculino", "F": "Feminino", "O": "Outro"}

st.set_page_config(page_title="Cadastro de Pessoas", page_icon="🗂️", layout="wide")

# -------------- Helpers --------------
def current_auth() -> Optional[Tuple[str, str]]:
    return st.session_state.get("auth")

async def fetch_json(client: httpx.AsyncClient, method: str, url: str, **kwargs):
    auth = kwargs.pop("auth", current_auth())
    try:
        resp = await client.request(method, url, auth=auth, timeout=10, **kwargs)
        if resp.headers.get("content-type", "").startswith("application/json"):
            data = resp.json()
        else:
            data = {"raw": resp.text}
        if resp.is_error:
            return False, data, resp.status_code
        return True, data, resp.status_code
    except httpx.HTTPError as e:
        return False, {"detail": str(e)}, 0

async def list_persons(client, page: int, page_size: int, filtro: str = ""):
    params: Dict[str, Any] = {"page": page, "page_size": page_size}
    if filtro:
        params["filter"] = filtro
    return await fetch_json(client, "GET", PERSONS_URL, params=params)

async def get_person_by_cpf(client, cpf: str):
    return await fetch_json(client, "GET", f"{PERSONS_URL}/cpf/{CPFUtils.normalize_cpf(cpf)}")

async def check_cpf(client, cpf: str, exclude_id: Optional[int] = None):
    params = {"exclude_id": exclude_id} if exclude_id is not None else None
    return await fetch_json(client, "GET", f"{PERSONS_URL}/check-cpf/{CPFUtils.normalize_cpf(cpf)}", params=params)

async def create_person(client, payload: Dict[str, Any]):
    return await fetch_json(client, "POST", PERSONS_URL, json=payload)

async def update_person(client, person_id: int, payload: Dict[str, Any]):
    return await fetch_json(client, "PUT", f"{PERSONS_URL}/{person_id}", json=payload)

async def delete_person(client, person_id: int):
    return await fetch_json(client, "DELETE", f"{PERSONS_URL}/{person_id}")

def error_detail(data: Any) -> Any:
    return data.get("detail") if isinstance(data, dict) else data

def person_form(prefix: str, defaults: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Campos comuns de cadastro/edição. Retorna o payload (sem CPF)."""
    defaults = defaults or {}
    name = st.text_input("Nome", value=defaults.get("name", ""), key=f"{prefix}_name")
    c1, c2 = st.columns(2)
    with c1:
        sex_keys = list(SEX_OPTIONS)
        sex = st.selectbox("Sexo", sex_keys, index=sex_keys.index(defaults.get("sex") or ""),
                           format_func=SEX_OPTIONS.get, key=f"{prefix}_sex")
    with c2:
        birth = st.date_input("Data de nascimento",
                              value=date.fromisoformat(defaults["birth_date"]) if defaults.get("birth_date") else date(1990, 1, 1),
                              min_value=date(1900, 1, 1), max_value=date.today(), key=f"{prefix}_birth")
    email = st.text_input("Email", value=defaults.get("email") or "", key=f"{prefix}_email")
    c3, c4 = st.columns(2)
    with c3:
        birthplace = st.text_input("Naturalidade", value=defaults.get("birthplace") or "", key=f"{prefix}_birthplace")
    with c4:
        nationality = st.text_input("Nacionalidade", value=defaults.get("nationality") or "", key=f"{prefix}_nationality")
    # campo vazio vai como "" (limpa na edição); null deixaria o valor atual
    return {
        "name": name,
        "sex": sex,
        "birth_date": birth.isoformat(),
        "email": email.strip(),
        "birthplace": birthplace.strip(),
        "nationality": nationality.strip(),
    }

# -------------- UI Sections --------------
st.title("🗂️ Cadastro de Pessoas")
st.caption("Interface simples em Streamlit para explorar a API (login obrigatório)")

import asyncio

async def validate_credentials(user: str, password: str) -> bool:
    """Realiza uma chamada ao endpoint raiz para validar credenciais Basic Auth."""
    async with httpx.AsyncClient() as client:
        try:
            resp = await client.get(f"{API_BASE}/", auth=(user, password), timeout=5)
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

def logout():
    st.session_state.pop("auth", None)

async def main_ui():
    # Gating de autenticação
    if "auth" not in st.session_state:
        with st.container():
            st.subheader("🔐 Login")
            with st.form("login_form", clear_on_submit=False):
                user = st.text_input("Usuário", key="login_user")
                pwd = st.text_input("Senha", type="password", key="login_pwd")
                submitted = st.form_submit_button("Entrar")
                if submitted:
                    if not user or not pwd:
                        st.warning("Preencha usuário e senha.")
                    else:
                        ok = await validate_credentials(user, pwd)
                        if ok:
                            st.session_state["auth"] = (user, pwd)
                            st.success("Autenticado com sucesso.")
                            st.rerun()
                        else:
                            st.error("Credenciais inválidas ou serviço indisponível.")
        st.stop()

    auth_user = st.session_state.get("auth")[0]
    st.sidebar.markdown(f"**Usuário:** {auth_user}")
    st.sidebar.button("Sair", on_click=logout)

    async with httpx.AsyncClient() as client:
        tabs = st.tabs(["Pessoas", "Novo Cadastro", "Editar", "Consulta por CPF"])

        # ---- Tab Listagem ----
        with tabs[0]:
            st.subheader("Pessoas Cadastradas")
            f1, f2, f3 = st.columns([3, 1, 1])
            with f1:
                filtro = st.text_input("Filtro (nome, email ou CPF somente números)", key="l_filter")
            with f2:
                page_size = st.selectbox("Por página", [5, 10, 20, 50, 100], index=1, key="l_page_size")
            with f3:
                page = st.number_input("Página", min_value=1, value=1, step=1, key="l_page")

            ok, data, status = await list_persons(client, int(page), int(page_size), filtro.strip())
            if not ok:
                st.error(f"Erro ao carregar pessoas ({status}): {error_detail(data)}")
            else:
                st.caption(f"Total: {data['total']} · Página {data['page']} de {max(data['total_pages'], 1)}")
                if not data["items"]:
                    st.info("Nenhuma pessoa encontrada.")
                for p in data["items"]:
                    label = f"#{p['id']} {p['name']} · {p['cpf']} · {p['age']} anos"
                    with st.expander(label):
                        st.json(p)
                        if st.button("Excluir", key=f"del_{p['id']}"):
                            dok, ddata, dstatus = await delete_person(client, p["id"])
                            if dok:
                                st.warning(f"Pessoa {p['id']} removida")
                            else:
                                st.error(f"Falha ({dstatus}): {error_detail(ddata)}")
                            st.rerun()

        # ---- Tab Cadastro ----
        with tabs[1]:
            st.subheader("Nova Pessoa")
            payload = person_form("c")
            cpf_input = st.text_input("CPF", key="c_cpf", placeholder="000.000.000-00")

            # Pré-validação do CPF com o mesmo módulo usado pela API
            cpf_ok = CPFUtils.is_valid_cpf(cpf_input)
            if cpf_input and not cpf_ok:
                st.error("CPF inválido")
            elif cpf_ok:
                st.caption(f"CPF: {CPFUtils.format_cpf(cpf_input)}")
                eok, edata, _ = await check_cpf(client, cpf_input)
                if eok and edata.get("exists"):
                    st.warning("CPF já cadastrado no sistema.")

            if st.button("Cadastrar", type="primary"):
                if not payload["name"].strip():
                    st.warning("Nome é obrigatório e não pode estar em branco.")
                elif not cpf_ok:
                    st.warning("Corrija o CPF antes de enviar.")
                else:
                    payload["cpf"] = CPFUtils.normalize_cpf(cpf_input)
                    ok, data, status = await create_person(client, payload)
                    if ok:
                        st.success(f"Pessoa cadastrada. ID: {data.get('id')}")
                    elif status == 409:
                        st.error(f"CPF duplicado: {error_detail(data)}")
                    elif status in (400, 422):
                        st.error(f"Dados inválidos: {error_detail(data)}")
                    else:
                        st.error(f"Erro ({status}): {error_detail(data)}")

        # ---- Tab Edição ----
        with tabs[2]:
            st.subheader("Editar Pessoa")
            edit_id = st.number_input("ID", min_value=1, step=1, key="u_id")
            ok, current, status = await fetch_json(client, "GET", f"{PERSONS_URL}/{int(edit_id)}")
            if not ok:
                st.info(f"Pessoa não carregada ({status}): {error_detail(current)}")
            else:
                st.text_input("CPF (não pode ser alterado)", value=current["cpf"], disabled=True, key=f"u_cpf_{edit_id}")
                payload = person_form(f"u{int(edit_id)}", current)
                if st.button("Salvar alterações", type="primary"):
                    uok, udata, ustatus = await update_person(client, int(edit_id), payload)
                    if uok:
                        st.success("Pessoa atualizada.")
                        st.json(udata)
                    else:
                        st.error(f"Erro ({ustatus}): {error_detail(udata)}")

        # ---- Tab Consulta ----
        with tabs[3]:
            st.subheader("Consultar por CPF")
            q_cpf = st.text_input("CPF", key="q_cpf")
            if st.button("Consultar"):
                if not CPFUtils.is_valid_cpf(q_cpf):
                    st.error("CPF inválido")
                else:
                    ok, data, status = await get_person_by_cpf(client, q_cpf)
                    if ok:
                        st.json(data)
                    elif status == 404:
                        st.warning(f"Não encontrada: {error_detail(data)}")
                    else:
                        st.error(f"Erro ({status}): {error_detail(data)}")

asyncio.run(main_ui())
