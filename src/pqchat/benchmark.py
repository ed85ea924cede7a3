"""Timing of key generation, encryption and decryption."""

import statistics
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .crypto import decrypt_envelope, encrypt_message
from .formats import CURRENT_FORMAT, FormatVersion
from .keys import generate_identity_keypair

DEFAULT_SIZES = (64, 1024, 10 * 1024)


@dataclass
class BenchmarkResult:
    """Summary statistics for one measured operation, in milliseconds."""
    metric: str
    avg_time: float
    min_time: float
    max_time: float
    std_dev: float
    throughput: Optional[float] = None  # operations/second, or KB/s for per-KB metrics
    unit: str = "ms"

    @classmethod
    def from_samples(
        cls,
        metric: str,
        samples_ms: Sequence[float],
        kilobytes: Optional[float] = None,
    ) -> "BenchmarkResult":
        avg = statistics.fmean(samples_ms)
        std_dev = statistics.pstdev(samples_ms) if len(samples_ms) > 1 else 0.0
        throughput = None
        if avg > 0:
            per_second = 1000.0 / avg
            throughput = per_second * kilobytes if kilobytes else per_second
        return cls(
            metric=metric,
            avg_time=avg,
            min_time=min(samples_ms),
            max_time=max(samples_ms),
            std_dev=std_dev,
            throughput=throughput,
            unit="ms",
        )


@dataclass
class SizeResult:
    """Encryption and decryption timings for one message size."""
    size_bytes: int
    encryption: BenchmarkResult
    decryption: BenchmarkResult


@dataclass
class BenchmarkReport:
    """All measurements from one run_benchmark call."""
    iterations: int
    key_generation: BenchmarkResult
    message_sizes: List[SizeResult] = field(default_factory=list)


def _time_ms(func: Callable[[], object]) -> float:
    start = time.perf_counter()
    func()
    return (time.perf_counter() - start) * 1000.0


def run_benchmark(
    iterations: int = 10,
    sizes: Sequence[int] = DEFAULT_SIZES,
    version: FormatVersion = CURRENT_FORMAT,
) -> BenchmarkReport:
    """
    Measure identity generation and per-size encrypt/decrypt latency.

    Args:
        iterations: Repetitions per measurement
        sizes: Plaintext sizes in bytes
        version: Envelope format to benchmark

    Returns:
        BenchmarkReport with one result per metric
    """
    if iterations < 1:
        raise ValueError("iterations must be at least 1")

    keygen_samples = [_time_ms(generate_identity_keypair) for _ in range(iterations)]
    report = BenchmarkReport(
        iterations=iterations,
        key_generation=BenchmarkResult.from_samples("key_generation", keygen_samples),
    )

    recipient = generate_identity_keypair()
    for size in sizes:
        plaintext = "A" * size
        envelopes = []

        def encrypt() -> None:
            envelopes.append(encrypt_message(plaintext, recipient.public_keys, version))

        encrypt_samples = [_time_ms(encrypt) for _ in range(iterations)]
        decrypt_samples = [
            _time_ms(
                lambda env=env: decrypt_envelope(
                    env, recipient.classical.private_key, recipient.pq.private_key
                )
            )
            for env in envelopes
        ]
        kilobytes = size / 1024 if size else None
        report.message_sizes.append(
            SizeResult(
                size_bytes=size,
                encryption=BenchmarkResult.from_samples(f"encrypt_{size}", encrypt_samples, kilobytes),
                decryption=BenchmarkResult.from_samples(f"decrypt_{size}", decrypt_samples, kilobytes),
            )
        )

    return report
