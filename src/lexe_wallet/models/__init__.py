"""Data models for the lexe_wallet SDK."""

from lexe_wallet.models.payments import (
    BasicPayment,
    FinalizedStatus,
    PaymentCreatedIndex,
    PaymentDirection,
    PaymentKind,
    PaymentStatus,
    PaymentUpdatedIndex,
    SdkPayment,
)
from lexe_wallet.models.requests import (
    PaymentSyncSummary,
    ProvisionOptions,
    ProvisionStatus,
    SdkCreateInvoiceRequest,
    SdkCreateInvoiceResponse,
    SdkGetPaymentRequest,
    SdkGetPaymentResponse,
    SdkNodeInfo,
    SdkPayInvoiceRequest,
    SdkPayInvoiceResponse,
    UpdatePaymentNote,
)
from lexe_wallet.models.config import CliConfig, DeployEnv, WalletEnvConfig, WalletUserConfig

__all__ = [
    "BasicPayment", "FinalizedStatus", "PaymentCreatedIndex", "PaymentDirection",
    "PaymentKind", "PaymentStatus", "PaymentUpdatedIndex", "SdkPayment",
    "PaymentSyncSummary", "ProvisionOptions", "ProvisionStatus",
    "SdkCreateInvoiceRequest", "SdkCreateInvoiceResponse",
    "SdkGetPaymentRequest", "SdkGetPaymentResponse", "SdkNodeInfo",
    "SdkPayInvoiceRequest", "SdkPayInvoiceResponse", "UpdatePaymentNote",
    "CliConfig", "DeployEnv", "WalletEnvConfig", "WalletUserConfig",
]
