"""When to reconcile again without an external trigger."""
from __future__ import annotations

import datetime

from cryptography import x509


def compute_requeue_after(
    certificate: x509.Certificate,
    lookahead: datetime.timedelta,
    now: datetime.datetime | None = None,
    expiration_threshold: datetime.timedelta | None = None,
    minimum: datetime.timedelta = datetime.timedelta(minutes=1),
) -> datetime.timedelta:
    """Return the delay until the next forced reconciliation.

    The nominal deadline is ``(not_after - now) - lookahead``. When that is
    already past, the deadline becomes the moment the certificate enters
    *expiration_threshold* (when given), and never less than *minimum*.

    Parameters
    ----------
    certificate:
        The active serving certificate.
    lookahead:
        How long before expiry to wake up.
    now:
        Reference time; defaults to the current UTC time.
    expiration_threshold:
        Remaining validity below which rotation happens.
    minimum:
        Lower bound for the returned delay.
    """
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)

    remaining = certificate.not_valid_after_utc - now
    requeue_after = remaining - lookahead
    if requeue_after <= datetime.timedelta(0) and expiration_threshold is not None:
        requeue_after = remaining - expiration_threshold
    return max(requeue_after, minimum)
