from pydantic import BaseModel, ConfigDict, Field


class CreatePaymentRequest(BaseModel):
    wallet: str = Field(min_length=1)


class VerifyPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reference: str = Field(min_length=1)
    tx_signature: str = Field(alias='txSignature', min_length=1)
