"""
Pytest configuration and shared fixtures for the test suite.
"""

import pytest
import sys
from pathlib import Path

# Add the package source to Python path for testing
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from locator_healing.core.models.healing_models import HealingConfiguration, ScenarioContext  # noqa: E402


LOGIN_HTML = """
<html>
<head><title>Login</title></head>
<body>
  <h1>Sign in</h1>
  <form>
    <label for="username">Username</label>
    <input id="username" name="username" type="text" placeholder="Username">
    <input id="password" name="password" type="password">
    <button id="login-btn" type="submit">Log in</button>
  </form>
  <div class="error-message">Invalid credentials</div>
</body>
</html>
"""


@pytest.fixture(scope="session")
def src_dir():
    """Provide the package source path for tests."""
    return src_path


@pytest.fixture
def login_html():
    """Markup of a small login page."""
    return LOGIN_HTML


@pytest.fixture
def healing_config(tmp_path):
    """Create a test healing configuration writing into a temp directory."""
    return HealingConfiguration(
        enabled=True,
        max_retries=2,
        max_healing_attempts=2,
        settle_delay_ms=0,
        cache_path=str(tmp_path / "locator-cache.json"),
        registry_dir=str(tmp_path / "registries"),
        inventory_limit=20
    )


@pytest.fixture
def scenario():
    """Fresh scenario-scoped context."""
    return ScenarioContext(scenario_id="test-scenario")


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Set up logging for tests."""
    import logging
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
