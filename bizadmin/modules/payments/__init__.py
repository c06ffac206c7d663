from .service import PaymentService, PaymentResult

__all__ = ["PaymentService", "PaymentResult"]
