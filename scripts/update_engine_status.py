#!/usr/bin/env python3
"""
Status values exchanged with the update engine service.

- Status: result of a synchronous IPC call (binder style exception codes)
- UpdateStatus: progress state pushed through onStatusUpdate
- ErrorCode: terminal result pushed through onPayloadApplicationComplete
"""

from dataclasses import dataclass
from enum import IntEnum

# Process exit codes (sysexits.h)
EX_OK = 0
EX_FAILURE = 1

# Binder exception codes
EX_NONE = 0
EX_SECURITY = -1
EX_BAD_PARCELABLE = -2
EX_ILLEGAL_ARGUMENT = -3
EX_NULL_POINTER = -4
EX_ILLEGAL_STATE = -5
EX_NETWORK_MAIN_THREAD = -6
EX_UNSUPPORTED_OPERATION = -7
EX_SERVICE_SPECIFIC = -8
EX_PARCELABLE = -9
EX_TRANSACTION_FAILED = -129

EXCEPTION_NAMES = {
    EX_NONE: "EX_NONE",
    EX_SECURITY: "EX_SECURITY",
    EX_BAD_PARCELABLE: "EX_BAD_PARCELABLE",
    EX_ILLEGAL_ARGUMENT: "EX_ILLEGAL_ARGUMENT",
    EX_NULL_POINTER: "EX_NULL_POINTER",
    EX_ILLEGAL_STATE: "EX_ILLEGAL_STATE",
    EX_NETWORK_MAIN_THREAD: "EX_NETWORK_MAIN_THREAD",
    EX_UNSUPPORTED_OPERATION: "EX_UNSUPPORTED_OPERATION",
    EX_SERVICE_SPECIFIC: "EX_SERVICE_SPECIFIC",
    EX_PARCELABLE: "EX_PARCELABLE",
    EX_TRANSACTION_FAILED: "EX_TRANSACTION_FAILED",
}


class UpdateStatus(IntEnum):
    """Update engine state as reported by onStatusUpdate"""
    IDLE = 0
    CHECKING_FOR_UPDATE = 1
    UPDATE_AVAILABLE = 2
    DOWNLOADING = 3
    VERIFYING = 4
    FINALIZING = 5
    UPDATED_NEED_REBOOT = 6
    REPORTING_ERROR_EVENT = 7
    ATTEMPTING_ROLLBACK = 8
    DISABLED = 9


class ErrorCode(IntEnum):
    """Payload application result as reported by onPayloadApplicationComplete"""
    SUCCESS = 0
    ERROR = 1
    OMAHA_REQUEST_ERROR = 2
    OMAHA_RESPONSE_HANDLER_ERROR = 3
    FILESYSTEM_COPIER_ERROR = 4
    POSTINSTALL_RUNNER_ERROR = 5
    PAYLOAD_MISMATCHED_TYPE = 6
    INSTALL_DEVICE_OPEN_ERROR = 7
    KERNEL_DEVICE_OPEN_ERROR = 8
    DOWNLOAD_TRANSFER_ERROR = 9
    PAYLOAD_HASH_MISMATCH_ERROR = 10
    PAYLOAD_SIZE_MISMATCH_ERROR = 11
    DOWNLOAD_PAYLOAD_VERIFICATION_ERROR = 12
    DOWNLOAD_NEW_PARTITION_INFO_ERROR = 13
    DOWNLOAD_WRITE_ERROR = 14
    NEW_ROOTFS_VERIFICATION_ERROR = 15
    NEW_KERNEL_VERIFICATION_ERROR = 16
    SIGNED_DELTA_PAYLOAD_EXPECTED_ERROR = 17
    DOWNLOAD_PAYLOAD_PUB_KEY_VERIFICATION_ERROR = 18
    POSTINSTALL_BOOTED_FROM_FIRMWARE_B = 19
    DOWNLOAD_STATE_INITIALIZATION_ERROR = 20
    DOWNLOAD_INVALID_METADATA_MAGIC_STRING = 21
    DOWNLOAD_SIGNATURE_MISSING_IN_MANIFEST = 22
    DOWNLOAD_MANIFEST_PARSE_ERROR = 23
    DOWNLOAD_METADATA_SIGNATURE_ERROR = 24
    DOWNLOAD_METADATA_SIGNATURE_VERIFICATION_ERROR = 25
    DOWNLOAD_METADATA_SIGNATURE_MISMATCH = 26
    DOWNLOAD_OPERATION_HASH_VERIFICATION_ERROR = 27
    DOWNLOAD_OPERATION_EXECUTION_ERROR = 28
    DOWNLOAD_OPERATION_HASH_MISMATCH = 29
    OMAHA_REQUEST_EMPTY_RESPONSE_ERROR = 30
    OMAHA_REQUEST_XML_PARSE_ERROR = 31
    DOWNLOAD_INVALID_METADATA_SIZE = 32
    DOWNLOAD_INVALID_METADATA_SIGNATURE = 33
    OMAHA_RESPONSE_INVALID = 34
    OMAHA_UPDATE_IGNORED_PER_POLICY = 35
    OMAHA_UPDATE_DEFERRED_PER_POLICY = 36
    OMAHA_ERROR_IN_HTTP_RESPONSE = 37
    DOWNLOAD_OPERATION_HASH_MISSING_ERROR = 38
    DOWNLOAD_METADATA_SIGNATURE_MISSING_ERROR = 39
    OMAHA_UPDATE_DEFERRED_FOR_BACKOFF = 40
    POSTINSTALL_POWERWASH_ERROR = 41
    UPDATE_CANCELED_BY_CHANNEL_CHANGE = 42
    POSTINSTALL_FIRMWARE_RO_NOT_UPDATABLE = 43
    UNSUPPORTED_MAJOR_PAYLOAD_VERSION = 44
    UNSUPPORTED_MINOR_PAYLOAD_VERSION = 45
    OMAHA_REQUEST_XML_HAS_ENTITY_DECL = 46
    FILESYSTEM_VERIFIER_ERROR = 47
    USER_CANCELED = 48


def update_status_to_string(status_code: int) -> str:
    try:
        return UpdateStatus(status_code).name
    except ValueError:
        return f"Unknown({status_code})"


def error_code_to_string(error_code: int) -> str:
    try:
        return ErrorCode(error_code).name
    except ValueError:
        return f"Unknown({error_code})"


@dataclass(frozen=True)
class Status:
    """Result of a synchronous call on the update engine service"""
    exception_code: int = EX_NONE
    message: str = ""

    @classmethod
    def ok(cls) -> "Status":
        return cls()

    @classmethod
    def transaction_failed(cls, message: str) -> "Status":
        return cls(EX_TRANSACTION_FAILED, message)

    def is_ok(self) -> bool:
        return self.exception_code == EX_NONE

    @property
    def exit_code(self) -> int:
        """Process exit code for this status.

        Negative exception codes wrap the way a POSIX exit status does, and a
        failure never maps to 0.
        """
        if self.is_ok():
            return EX_OK
        return (self.exception_code & 0xFF) or EX_FAILURE

    def __str__(self) -> str:
        if self.is_ok():
            return "No error"
        name = EXCEPTION_NAMES.get(self.exception_code, "UNKNOWN")
        return f"Status({self.exception_code}, {name}): '{self.message}'"
