import pytest
from pydantic import ValidationError

from order_management.core.config import EnvironmentMode, Settings
from order_management.core.exceptions import InsufficientStockError, RestaurantNameTakenError
from order_management.main import status_code_for


def test_env_mode_is_case_insensitive():
    settings = Settings(env_mode="PRODUCTION", database_url="sqlite+aiosqlite:///:memory:")

    assert settings.env_mode == EnvironmentMode.PRODUCTION
    assert settings.is_production
    assert settings.is_sqlite


def test_unknown_env_mode():
    with pytest.raises(ValidationError):
        Settings(env_mode="qa")


def test_cors_origins_list():
    settings = Settings(cors_origins="http://a.test, http://b.test,")
    assert settings.cors_origins_list == ["http://a.test", "http://b.test"]


def test_order_number_defaults():
    settings = Settings()

    assert settings.order_number_prefix == "ORD"
    assert settings.order_number_token_length == 8
    assert settings.order_number_max_attempts >= 1


def test_status_codes_follow_the_error_hierarchy():
    assert status_code_for(InsufficientStockError(1, 2)) == 409
    assert status_code_for(RestaurantNameTakenError("Luigi's")) == 400
