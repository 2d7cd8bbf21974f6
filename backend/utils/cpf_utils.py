"""
Módulo utilitário para validação, normalização e formatação de CPF.
Implementação única, usada pela API e pelo console (pré-validação no cliente).
"""
from typing import Optional

# Caracteres de formatação aceitos na entrada: '.', '-' e espaço
_FORMAT_CHARS = str.maketrans("", "", ".- ")
_DIGITS = frozenset("0123456789")


class CPFUtils:
    @staticmethod
    def normalize_cpf(cpf: Optional[str]) -> str:
        """
        Remove pontos, hífen e espaços do CPF.
        Parâmetros:
            cpf (str): CPF em qualquer formato
        Retorno:
            str: CPF sem formatação ('' para entrada vazia ou None)
        Exemplo: '123.456.789-09' -> '12345678909'
        Outros caracteres (letras, '/') são mantidos; a validação os rejeita.
        """
        if cpf is None or not cpf.strip():
            return ""
        return cpf.translate(_FORMAT_CHARS)

    @staticmethod
    def _check_digit(digits: str) -> int:
        # pesos decrescentes terminando em 2: 10..2 para 9 dígitos, 11..2 para 10
        weight = len(digits) + 1
        soma = sum(int(d) * (weight - i) for i, d in enumerate(digits))
        resto = soma % 11
        return 0 if resto < 2 else 11 - resto

    @staticmethod
    def is_valid_cpf(cpf: Optional[str]) -> bool:
        """
        Valida CPF pelo algoritmo dos dígitos verificadores.
        Parâmetros:
            cpf (str): CPF com ou sem formatação
        Retorno:
            bool: True se válido, False caso contrário (nunca lança exceção)
        """
        if cpf is None or not cpf.strip():
            return False
        cpf = CPFUtils.normalize_cpf(cpf)
        if len(cpf) != 11 or not set(cpf) <= _DIGITS:
            return False
        # Sequências repetidas (00000000000, 11111111111...) são inválidas por política
        if cpf == cpf[0] * 11:
            return False
        digito10 = CPFUtils._check_digit(cpf[:9])
        digito11 = CPFUtils._check_digit(cpf[:9] + str(digito10))
        return cpf[9:] == f"{digito10}{digito11}"

    @staticmethod
    def format_cpf(cpf: Optional[str]) -> str:
        """
        Formata o CPF no padrão DDD.DDD.DDD-DD.
        Parâmetros:
            cpf (str): CPF com ou sem formatação
        Retorno:
            str: CPF formatado, ou a forma normalizada se não tiver 11 caracteres
        """
        cpf = CPFUtils.normalize_cpf(cpf)
        if len(cpf) != 11:
            return cpf
        return f"{cpf[:3]}.{cpf[3:6]}.{cpf[6:9]}-{cpf[9:]}"
