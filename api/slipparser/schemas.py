from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PartyOut(BaseModel):
    name: str = ""
    account_number: str = ""


class PayeeOut(PartyOut):
    biller_id: str = ""
    store_code: str = ""
    transaction_code: str = ""


class SlipOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bank_from: str = ""
    bank_to: str = ""
    status: str = ""
    date_time_text: str = ""
    date_time_iso: str = ""
    from_: PartyOut = Field(default_factory=PartyOut, alias="from")
    to: PayeeOut = Field(default_factory=PayeeOut)
    amount: float = 0.0
    fee: float = 0.0
    currency: str = "THB"
    transaction_reference: str = ""
    reference_number: str = ""
    reference_code: str = ""
    qr_code: str = ""


class BatchSlipOut(SlipOut):
    source_id: str = ""
    file_name: str = ""


class MetaOut(BaseModel):
    profile: str
    state: str
    date_confidence: str
    warnings: List[str] = []
    processing_ms: float = 0.0


class NormalizeRequest(BaseModel):
    text: str
    bank_hint: Optional[str] = None


class NormalizeResponse(BaseModel):
    slip: SlipOut
    meta: MetaOut


class BatchTextIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Union[str, int]
    text: str
    file_name: str = Field("", alias="fileName")
    file_size: Optional[int] = Field(None, alias="fileSize")
    bank_hint: Optional[str] = None


class BatchRequest(BaseModel):
    texts: List[BatchTextIn]
    bank_hint: Optional[str] = None


class BatchErrorOut(BaseModel):
    source_id: str
    file_name: str = ""
    error: str


class BatchResponse(BaseModel):
    slips: List[BatchSlipOut] = []
    errors: List[BatchErrorOut] = []


class OcrResponse(BaseModel):
    text: str


class ParseResponse(BaseModel):
    text: str
    slip: SlipOut
    meta: MetaOut
