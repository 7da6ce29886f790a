# schemas/mpesa.py
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


class MpesaCredentialsRequest(BaseModel):
     consumer_key: Optional[str] = None
     consumer_secret: Optional[str] = None
     shortcode: Optional[Union[str, int]] = None
     passkey: Optional[str] = None
     callback_url: Optional[str] = None
     environment: Optional[str] = "sandbox"


class StkPushRequest(BaseModel):
     """Schema for an M-Pesa STK push (payer prompt)."""
     phone: Optional[str] = None
     amount: Optional[Union[float, str]] = None
     accountReference: Optional[str] = None
     transactionDesc: Optional[str] = None
     invoiceId: Optional[str] = None
     paymentType: Optional[str] = None
     landlordId: Optional[str] = None
     transactionId: Optional[str] = None
     dryRun: bool = False

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "phone": "0712345678",
                    "amount": 15000,
                    "invoiceId": "4f0c1a52-6a8e-4a55-9f0c-0d1f2e3a4b5c",
                    "paymentType": "rent",
               }
          }
     )
