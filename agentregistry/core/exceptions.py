from fastapi import HTTPException, status


class RegistryError(HTTPException):
    """Base for API errors. The detail carries a machine-readable ``kind``."""

    kind = "internal_error"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: str | None = None):
        detail = {"error": message, "kind": self.kind}
        if code:
            detail["code"] = code
        super().__init__(status_code=self.default_status, detail=detail)
        self.message = message


class UnauthorizedError(RegistryError):
    kind = "unauthorized"
    default_status = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Invalid or missing authentication"):
        super().__init__(message)


class AgentNotFoundError(RegistryError):
    kind = "not_found"
    default_status = status.HTTP_404_NOT_FOUND

    def __init__(self, agent_id: str):
        super().__init__(f"Agent {agent_id} not found")


class ReviewNotFoundError(RegistryError):
    kind = "not_found"
    default_status = status.HTTP_404_NOT_FOUND

    def __init__(self, review_id: str):
        super().__init__(f"Review {review_id} not found")


class UnsupportedChainError(RegistryError):
    kind = "unsupported_chain"
    default_status = status.HTTP_400_BAD_REQUEST


class PreconditionFailedError(RegistryError):
    kind = "precondition_failed"
    default_status = status.HTTP_400_BAD_REQUEST


class ConfirmationConflictError(RegistryError):
    """Terminal: the entity is already confirmed with another transaction."""

    kind = "conflict"
    default_status = status.HTTP_409_CONFLICT


class TransactionFailedError(RegistryError):
    """Terminal: the transaction was mined but reverted."""

    kind = "chain_rejected"
    default_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Transaction failed on-chain"):
        super().__init__(message)


class ChainUnavailableError(RegistryError):
    """Transient: the node could not produce the receipt yet. Retry later."""

    kind = "service_unavailable"
    default_status = status.HTTP_503_SERVICE_UNAVAILABLE


class IdentifierNotFoundError(RegistryError):
    kind = "identifier_not_found"
    default_status = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str = "Could not determine token ID from transaction"):
        super().__init__(message)


class InternalError(RegistryError):
    kind = "internal_error"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR
