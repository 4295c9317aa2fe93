"""
JSON Schema Contract Validators

Модуль для валидации внешних JSON payload согласно формальным JSON Schema
контрактам. Использует библиотеку jsonschema (Draft 2020-12).

Схемы (tiertransfer/core/contracts/schema/):
- tier_table.json — конфигурация тиров для admin load_tiers
- transfer_request.json — внешний запрос customTransfer
"""

import json
from pathlib import Path
from typing import Any, Dict

import jsonschema
from jsonschema import Draft202012Validator, ValidationError

from tiertransfer.core.domain.tiers import TierTable
from tiertransfer.core.domain.transfer import TransferRequest
from tiertransfer.core.errors import TierConfigurationInvalid


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """
    Загрузчик JSON Schema файлов.

    Схемы лежат рядом с модулем в schema/ (package data).
    """

    def __init__(self, schema_dir: Path | None = None):
        self._schema_dir = schema_dir or Path(__file__).parent / "schema"
        if not self._schema_dir.exists():
            raise RuntimeError(f"Schema directory not found: {self._schema_dir}")

        # Кэш загруженных схем
        self._schemas: Dict[str, Dict[str, Any]] = {}

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Загрузка JSON Schema файла.

        Args:
            schema_name: Имя схемы без расширения (например, 'tier_table')

        Raises:
            FileNotFoundError: Если файл схемы не найден
            ValueError: Если схема не проходит meta-validation
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self._schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)

        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid JSON Schema in {schema_name}.json: {e}")

        self._schemas[schema_name] = schema
        return schema


# Глобальный экземпляр загрузчика
_SCHEMA_LOADER = SchemaLoader()


# =============================================================================
# CONTRACT VALIDATORS
# =============================================================================


class ContractValidator:
    """Базовый класс: данные против JSON Schema."""

    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        self.schema = _SCHEMA_LOADER.load_schema(schema_name)
        self.validator = Draft202012Validator(self.schema)

    def validate(self, data: Dict[str, Any]) -> None:
        """
        Raises:
            ValidationError: Если данные не соответствуют схеме
        """
        self.validator.validate(data)

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return self.validator.is_valid(data)

    def iter_errors(self, data: Dict[str, Any]):
        return self.validator.iter_errors(data)


class TierTableValidator(ContractValidator):
    def __init__(self):
        super().__init__("tier_table")


class TransferRequestValidator(ContractValidator):
    def __init__(self):
        super().__init__("transfer_request")


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def validate_tier_table(data: Dict[str, Any]) -> None:
    TierTableValidator().validate(data)


def validate_transfer_request(data: Dict[str, Any]) -> None:
    TransferRequestValidator().validate(data)


def load_tier_table(data: Dict[str, Any]) -> TierTable:
    """
    JSON payload → TierTable.

    Порядок тиров в payload сохраняется: неупорядоченный payload отклоняется,
    а не сортируется молча.

    Raises:
        TierConfigurationInvalid: нарушение схемы или инвариантов таблицы
    """
    try:
        validate_tier_table(data)
    except ValidationError as e:
        raise TierConfigurationInvalid(f"tier table payload rejected: {e.message}") from e
    return TierTable.from_pairs((t["threshold"], t["rate_bps"]) for t in data["tiers"])


def load_transfer_request(data: Dict[str, Any]) -> TransferRequest:
    """
    JSON payload → TransferRequest.

    Raises:
        ValidationError: Если данные не соответствуют схеме
    """
    validate_transfer_request(data)
    return TransferRequest.model_validate(data)
