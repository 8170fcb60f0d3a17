"""Typed shapes of ``TaxReport.meta``.

The JSON column only ever holds a dumped ``ReportMeta``. Reads go through
``ReportMeta.load`` and writes through ``dump_meta`` so unknown keys never
reach the database.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _MetaModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class VatComputation(_MetaModel):
    kind: Literal["vat"] = "vat"
    accounting_method: str
    sales_net_cents: int
    sales_vat_cents: int
    purchase_net_cents: int
    purchase_vat_cents: int


class ChecklistItem(_MetaModel):
    id: str
    label: str
    done: bool = False


class IncomeTaxChecklist(_MetaModel):
    kind: Literal["income_tax_checklist"] = "income_tax_checklist"
    uses_tax_advisor: bool
    items: list[ChecklistItem]
    # Informational only; income tax itself is not computed
    profit_estimate_cents: int


class EuSalesListComputation(_MetaModel):
    kind: Literal["eu_sales_list"] = "eu_sales_list"
    cross_border_sales_net_cents: int


Computation = Annotated[
    Union[VatComputation, IncomeTaxChecklist, EuSalesListComputation],
    Field(discriminator="kind"),
]


class SubmissionInfo(_MetaModel):
    method: str = "manual"
    reference: str | None = None
    notes: str | None = None
    submitted_at: datetime


class PaymentInfo(_MetaModel):
    paid_at: datetime
    method: str | None = None
    amount_cents: int
    proof_document_id: str | None = None


class ReportIssue(_MetaModel):
    id: str
    type: str
    severity: Literal["info", "warning", "blocker"]
    title: str


class ReportMeta(_MetaModel):
    computation: Computation | None = None
    submission: SubmissionInfo | None = None
    payment: PaymentInfo | None = None
    issues: list[ReportIssue] = Field(default_factory=list)

    @classmethod
    def load(cls, raw: dict[str, Any] | None) -> ReportMeta:
        return cls.model_validate(raw or {})

    @property
    def has_blockers(self) -> bool:
        return any(issue.severity == "blocker" for issue in self.issues)


def dump_meta(meta: ReportMeta) -> dict[str, Any]:
    return meta.model_dump(mode="json", exclude_none=True)
