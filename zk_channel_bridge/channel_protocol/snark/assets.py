"""Helpers to resolve and load Groth16 verifying keys, proofs and public signals."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable, List, Tuple

from ..types import Groth16Proof
from .groth16 import VerifyingKey


def resolve_groth16_vk(
    tree_size: int,
    base_dir: str | Path | None = None,
) -> Path:
    """
    Resolve the ``verification_key.json`` of a tree capacity.

    Raises:
        FileNotFoundError: If no candidate exists
    """
    base_dir = Path(base_dir) if base_dir else _default_params_dir()
    candidates = [
        base_dir / "groth16" / f"leaves-{tree_size}" / "verification_key.json",
        base_dir / f"verification_key_{tree_size}.json",
        base_dir / f"merkle_tree_circuit_{tree_size}_verification_key.json",
    ]
    return _first_existing(candidates, f"groth16 verifying key for {tree_size} leaves")


def resolve_fixture_paths(
    tree_size: int,
    base_dir: str | Path | None = None,
) -> Tuple[Path, Path]:
    """
    Resolve proof/public-signal fixture paths for a tree capacity.
    """
    base_dir = Path(base_dir) if base_dir else _default_fixtures_dir()
    candidates = [
        (
            base_dir / "groth16" / f"leaves-{tree_size}" / "proof.json",
            base_dir / "groth16" / f"leaves-{tree_size}" / "public.json",
        ),
        (
            base_dir / f"proof_{tree_size}.json",
            base_dir / f"public_{tree_size}.json",
        ),
    ]
    return _first_existing_pair(candidates, f"groth16 fixtures for {tree_size} leaves")


def load_verifying_key(path: str | Path) -> VerifyingKey:
    return VerifyingKey.from_snarkjs(_read_json(path))


def load_proof(path: str | Path) -> Groth16Proof:
    return Groth16Proof.from_snarkjs(_read_json(path))


def load_public_signals(path: str | Path) -> List[int]:
    data = _read_json(path)
    if not isinstance(data, list):
        raise ValueError(f"public signals in {path} must be a JSON list")
    return [int(value) for value in data]


def _read_json(path: str | Path):
    with Path(path).open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _default_repo_root() -> Path:
    return Path(__file__).resolve().parents[3]


def _default_params_dir() -> Path:
    return Path(
        os.getenv("CHANNEL_SNARK_PARAMS_DIR", _default_repo_root() / "circuits" / "params")
    )


def _default_fixtures_dir() -> Path:
    return Path(
        os.getenv(
            "CHANNEL_SNARK_FIXTURES_DIR", _default_repo_root() / "circuits" / "fixtures"
        )
    )


def _first_existing(candidates: Iterable[Path], label: str) -> Path:
    candidates = list(candidates)
    for path in candidates:
        if path.exists():
            return path
    raise FileNotFoundError(
        f"Unable to resolve {label}. Checked: {', '.join(str(p) for p in candidates)}"
    )


def _first_existing_pair(
    candidates: Iterable[Tuple[Path, Path]],
    label: str,
) -> Tuple[Path, Path]:
    candidates = list(candidates)
    for proof_path, public_path in candidates:
        if proof_path.exists() and public_path.exists():
            return proof_path, public_path
    checked = "; ".join(f"{proof}, {public}" for proof, public in candidates)
    raise FileNotFoundError(f"Unable to resolve {label}. Checked: {checked}")
