from __future__ import annotations


class PaymentProviderError(Exception):
    """The provider did not create a payable transaction for a quote."""

    code = "provider_error"


class PaymentProviderTimeoutError(PaymentProviderError):
    """Every attempt timed out."""

    code = "provider_timeout"


class PaymentProviderValidationError(PaymentProviderError):
    """Provider rejected the preference payload, or answered without id / checkout url."""

    code = "provider_rejected"


class PaymentProviderAuthError(PaymentProviderError):
    code = "provider_auth"


class PaymentProviderUnavailableError(PaymentProviderError):
    """5xx answers, transport failures or malformed bodies outlasted the retries."""

    code = "provider_unavailable"
