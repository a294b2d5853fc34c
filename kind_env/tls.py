"""Self-signed TLS certificate lifecycle.

The key pair lives on disk as ``tls.key``/``tls.crt`` and in the cluster as a
``kubernetes.io/tls`` Secret. ``ensure_tls`` regenerates the pair when fewer
than ``renewal_threshold_days + 1`` whole days of validity remain, then
re-applies the Secret from the files on every call so the cluster copy
cannot drift from disk, even after an interrupted run.

Examples
--------
Check a certificate's remaining lifetime:

    expiry = parse_openssl_enddate("notAfter=Oct 18 12:00:00 2027 GMT")
    days_remaining(expiry, utcnow())

"""

from __future__ import annotations

import base64
import datetime as dt
import typing as typ

from kind_env.errors import CertificateError, CommandFailedError
from kind_env.executor import run_checked
from kind_env.k8s import MANAGED_BY_LABEL, apply_manifest, ensure_namespace
from kind_env.logging import get_logger, log_info, log_warning

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from kind_env.config import Config
    from kind_env.executor import CommandExecutor

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400
_OPENSSL_TIMEOUT = 60
_ENDDATE_PREFIX = "notAfter="
_ENDDATE_FORMAT = "%b %d %H:%M:%S %Y %Z"


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp."""
    return dt.datetime.now(dt.UTC)


def parse_openssl_enddate(text: str) -> dt.datetime:
    """Parse ``openssl x509 -enddate`` output into an aware UTC datetime.

    Parameters
    ----------
    text : str
        Output such as ``notAfter=Oct  8 12:00:00 2027 GMT``.

    Returns
    -------
    datetime
        The expiry timestamp in UTC.

    Raises
    ------
    ValueError
        If the text is not in the expected format.

    """
    value = text.strip()
    if value.startswith(_ENDDATE_PREFIX):
        value = value.removeprefix(_ENDDATE_PREFIX)
    # openssl pads single-digit days with a space
    normalized = " ".join(value.split())
    parsed = dt.datetime.strptime(normalized, _ENDDATE_FORMAT)  # noqa: DTZ007
    return parsed.replace(tzinfo=dt.UTC)


def days_remaining(expiry: dt.datetime, now: dt.datetime) -> int:
    """Return the whole days between ``now`` and ``expiry``, floored."""
    return int((expiry - now).total_seconds() // SECONDS_PER_DAY)


def certificate_expiry(cfg: Config, executor: CommandExecutor) -> dt.datetime:
    """Read the on-disk certificate's expiry with openssl.

    Raises
    ------
    CertificateError
        If openssl cannot read the certificate or its output is malformed.

    """
    try:
        result = run_checked(
            executor,
            ["openssl", "x509", "-enddate", "-noout", "-in", str(cfg.tls_cert)],
            timeout=_OPENSSL_TIMEOUT,
        )
        return parse_openssl_enddate(result.stdout)
    except (CommandFailedError, ValueError) as exc:
        msg = f"Cannot read expiry of {cfg.tls_cert}: {exc}"
        raise CertificateError(msg) from exc


def _remove_pair(cfg: Config) -> None:
    cfg.tls_cert.unlink(missing_ok=True)
    cfg.tls_key.unlink(missing_ok=True)


def _pair_is_current(
    cfg: Config, executor: CommandExecutor, now: dt.datetime
) -> bool:
    """Report whether an existing pair can be kept."""
    cert_exists = cfg.tls_cert.is_file()
    key_exists = cfg.tls_key.is_file()
    if not (cert_exists and key_exists):
        if cert_exists or key_exists:
            log_warning(logger, "Incomplete TLS key pair in %s.", cfg.tls_cert.parent)
        return False

    try:
        expiry = certificate_expiry(cfg, executor)
    except CertificateError as exc:
        log_warning(logger, "%s. Regenerating...", exc)
        return False

    days_left = days_remaining(expiry, now)
    if days_left > cfg.renewal_threshold_days:
        log_info(logger, "TLS cert valid for %d more days.", days_left)
        return True
    log_warning(logger, "TLS cert expires in %d days. Regenerating...", days_left)
    return False


def generate_certificate(cfg: Config, executor: CommandExecutor) -> None:
    """Generate a new self-signed key pair for the configured hostname.

    Raises
    ------
    CertificateError
        If openssl fails. Partial output is removed.

    """
    log_info(logger, "Generating new self-signed TLS cert for %s...", cfg.hostname)
    try:
        run_checked(
            executor,
            [
                "openssl",
                "req",
                "-x509",
                "-nodes",
                "-days",
                str(cfg.cert_validity_days),
                "-newkey",
                f"rsa:{cfg.key_bits}",
                "-keyout",
                str(cfg.tls_key),
                "-out",
                str(cfg.tls_cert),
                "-subj",
                f"/CN={cfg.hostname}/O={cfg.hostname}",
                "-addext",
                f"subjectAltName=DNS:{cfg.hostname}",
            ],
            timeout=_OPENSSL_TIMEOUT,
        )
    except CommandFailedError as exc:
        _remove_pair(cfg)
        msg = f"Failed to generate TLS key pair: {exc}"
        raise CertificateError(msg) from exc
    log_info(logger, "New TLS cert created (%d days).", cfg.cert_validity_days)


def tls_secret_manifest(
    cfg: Config, cert_pem: bytes, key_pem: bytes
) -> dict[str, object]:
    """Return the TLS Secret manifest for the given PEM bytes."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "kubernetes.io/tls",
        "metadata": {
            "name": cfg.tls_secret_name,
            "namespace": cfg.namespace,
            "labels": dict(MANAGED_BY_LABEL),
        },
        "data": {
            "tls.crt": base64.b64encode(cert_pem).decode("ascii"),
            "tls.key": base64.b64encode(key_pem).decode("ascii"),
        },
    }


def publish_tls_secret(cfg: Config, executor: CommandExecutor) -> None:
    """Apply the on-disk key pair as the cluster TLS Secret.

    Raises
    ------
    CertificateError
        If the files cannot be read or kubectl rejects the Secret.

    """
    try:
        cert_pem = cfg.tls_cert.read_bytes()
        key_pem = cfg.tls_key.read_bytes()
    except OSError as exc:
        msg = f"Cannot read TLS key pair: {exc}"
        raise CertificateError(msg) from exc

    try:
        ensure_namespace(cfg, executor, cfg.namespace)
        apply_manifest(cfg, executor, tls_secret_manifest(cfg, cert_pem, key_pem))
    except CommandFailedError as exc:
        msg = f"Failed to apply TLS secret '{cfg.tls_secret_name}': {exc}"
        raise CertificateError(msg) from exc
    log_info(logger, "Kubernetes TLS secret '%s' updated.", cfg.tls_secret_name)


def ensure_tls(
    cfg: Config,
    executor: CommandExecutor,
    *,
    now: cabc.Callable[[], dt.datetime] = utcnow,
) -> bool:
    """Ensure a valid key pair exists and the cluster Secret matches it.

    Parameters
    ----------
    cfg : Config
        Configuration with certificate paths, hostname and thresholds.
    executor : CommandExecutor
        Executor used to run openssl and kubectl.
    now : Callable[[], datetime]
        Clock used for the remaining-validity computation.

    Returns
    -------
    bool
        True if a new key pair was generated.

    Raises
    ------
    CertificateError
        If generation or publication fails.

    """
    cfg.tls_cert.parent.mkdir(parents=True, exist_ok=True)

    regenerated = False
    if not _pair_is_current(cfg, executor, now()):
        _remove_pair(cfg)
        generate_certificate(cfg, executor)
        regenerated = True

    publish_tls_secret(cfg, executor)
    return regenerated
