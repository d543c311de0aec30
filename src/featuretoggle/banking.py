"""銀行ドメイン向けのコンテキスト属性とビルダー"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from .context import EvaluationContext, EvaluationContextBuilder


class BankingAttributes:
    """リモート API と共有する属性名の定数。"""

    ID_CONTA: str = "idConta"
    ID_CLIENTE: str = "idCliente"
    AGENCIA: str = "agencia"
    CODIGO_AGENCIA: str = "codigoAgencia"
    DAC: str = "dac"
    TIPO_CONTA: str = "tipoConta"
    SEGMENTO_CLIENTE: str = "segmentoCliente"
    TIPO_PRODUTO: str = "tipoProduto"
    SALDO_CONTA: str = "saldoConta"
    RENDA_MENSAL: str = "rendaMensal"
    SCORE_CREDITO: str = "scoreCredito"
    NIVEL_RISCO: str = "nivelRisco"
    EH_PREMIUM: str = "ehPremium"
    TEM_CHEQUE_ESPECIAL: str = "temChequeEspecial"
    ESTA_ATIVO: str = "estaAtivo"
    CANAL: str = "canal"
    REGIAO: str = "regiao"
    ESTADO: str = "estado"
    CIDADE: str = "cidade"
    LIMITE_TRANSACAO_DIARIA: str = "limiteTransacaoDiaria"
    LIMITE_TRANSACAO_MENSAL: str = "limiteTransacaoMensal"
    # 整形済みのクエリ値をそのまま送るための属性
    VALOR_CONTEXTO: str = "valorContexto"


class AccountType(StrEnum):
    """口座種別。"""

    CORRENTE = "corrente"
    POUPANCA = "poupanca"
    INVESTIMENTO = "investimento"
    EMPRESARIAL = "empresarial"


class CustomerSegment(StrEnum):
    """顧客セグメント。"""

    BASICO = "basico"
    STANDARD = "standard"
    PREMIUM = "premium"
    PRIVATE = "private"


class RiskLevel(StrEnum):
    """リスクレベル。"""

    BAIXO = "baixo"
    MEDIO = "medio"
    ALTO = "alto"


class BankingContextBuilder:
    """銀行ドメインの属性名で EvaluationContext を組み立てるビルダー。

    account_id はターゲティングキーにも設定される。
    """

    def __init__(self) -> None:
        self._builder = EvaluationContextBuilder()

    def _set(self, key: str, value: Any) -> BankingContextBuilder:
        self._builder.attribute(key, value)
        return self

    def account_id(self, account_id: str) -> BankingContextBuilder:
        self._builder.targeting_key(account_id)
        return self._set(BankingAttributes.ID_CONTA, account_id)

    def customer_id(self, customer_id: str) -> BankingContextBuilder:
        return self._set(BankingAttributes.ID_CLIENTE, customer_id)

    def branch(self, branch: str) -> BankingContextBuilder:
        return self._set(BankingAttributes.AGENCIA, branch)

    def branch_code(self, branch_code: str) -> BankingContextBuilder:
        return self._set(BankingAttributes.CODIGO_AGENCIA, branch_code)

    def check_digit(self, dac: str) -> BankingContextBuilder:
        return self._set(BankingAttributes.DAC, dac)

    def account_type(self, account_type: AccountType) -> BankingContextBuilder:
        return self._set(BankingAttributes.TIPO_CONTA, account_type.value)

    def customer_segment(self, segment: CustomerSegment) -> BankingContextBuilder:
        return self._set(BankingAttributes.SEGMENTO_CLIENTE, segment.value)

    def product_type(self, product_type: str) -> BankingContextBuilder:
        return self._set(BankingAttributes.TIPO_PRODUTO, product_type)

    def account_balance(self, balance: float) -> BankingContextBuilder:
        return self._set(BankingAttributes.SALDO_CONTA, balance)

    def monthly_income(self, income: float) -> BankingContextBuilder:
        return self._set(BankingAttributes.RENDA_MENSAL, income)

    def credit_score(self, score: int) -> BankingContextBuilder:
        return self._set(BankingAttributes.SCORE_CREDITO, score)

    def risk_level(self, risk_level: RiskLevel) -> BankingContextBuilder:
        return self._set(BankingAttributes.NIVEL_RISCO, risk_level.value)

    def premium(self, is_premium: bool) -> BankingContextBuilder:
        return self._set(BankingAttributes.EH_PREMIUM, is_premium)

    def overdraft(self, has_overdraft: bool) -> BankingContextBuilder:
        return self._set(BankingAttributes.TEM_CHEQUE_ESPECIAL, has_overdraft)

    def active(self, is_active: bool) -> BankingContextBuilder:
        return self._set(BankingAttributes.ESTA_ATIVO, is_active)

    def channel(self, channel: str) -> BankingContextBuilder:
        return self._set(BankingAttributes.CANAL, channel)

    def region(self, region: str) -> BankingContextBuilder:
        return self._set(BankingAttributes.REGIAO, region)

    def state(self, state: str) -> BankingContextBuilder:
        return self._set(BankingAttributes.ESTADO, state)

    def city(self, city: str) -> BankingContextBuilder:
        return self._set(BankingAttributes.CIDADE, city)

    def daily_transaction_limit(self, limit: float) -> BankingContextBuilder:
        return self._set(BankingAttributes.LIMITE_TRANSACAO_DIARIA, limit)

    def monthly_transaction_limit(self, limit: float) -> BankingContextBuilder:
        return self._set(BankingAttributes.LIMITE_TRANSACAO_MENSAL, limit)

    def context_value(self, value: str) -> BankingContextBuilder:
        """リクエストの valorContexto をそのまま指定する。"""
        return self._set(BankingAttributes.VALOR_CONTEXTO, value)

    def custom(self, key: str, value: Any) -> BankingContextBuilder:
        return self._set(key, value)

    def build(self) -> EvaluationContext:
        return self._builder.build()
