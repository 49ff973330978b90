#!/usr/bin/env python3
"""
Basic functionality test for Session Hub.

Tests core components to ensure they work correctly together.
"""

import asyncio
import tempfile
import shutil
from pathlib import Path

def test_session_state():
    """Test the session state mutation and read API."""
    print("🧠 Testing Session State...")

    from session_hub.core.session_state import SessionState, WAITING_HEADER

    state = SessionState()
    state.start()
    assert state.code_buffer == WAITING_HEADER, f"Unexpected seed: {state.code_buffer!r}"

    # Test agent registration
    success = state.register_agent("alpha", name="Alpha", focus="Water")
    assert success, "Failed to register agent"
    assert state.agent_state["alpha"]["online"] is True, "Agent not online"

    # Test topic proposal
    success = state.propose_topic("alpha", title="Clean water")
    assert success, "Failed to propose topic"
    assert state.current_topic_id == state.topics[0]["id"], "First topic not current"

    # Test code append
    success = state.append_code("alpha", "def filter_water():\n    pass")
    assert success, "Failed to append code"
    assert "def filter_water" in state.code_buffer, "Code not in buffer"

    # Test snapshot
    snapshot = state.snapshot()
    assert snapshot["current_topic_id"] == state.current_topic_id, "Snapshot topic mismatch"
    assert snapshot["agent_statuses"]["alpha"] == "coding", f"Status mismatch: {snapshot['agent_statuses']}"

    print("  ✓ Agent registration")
    print("  ✓ Topic proposal")
    print("  ✓ Code append")
    print("  ✓ Snapshot")

async def _workspace_lifecycle(temp_dir: Path):
    from session_hub.main import SessionHubWorkspace
    from session_hub.utils.config import SessionHubConfig

    config = SessionHubConfig(
        data_dir=str(temp_dir),
        persistence={"save_debounce": 0.05},
        thinker={"enabled": False},
        discovery={
            "agents_file": str(temp_dir / "agents.json"),
            "local_agents_dir": str(temp_dir / "agents"),
            "try_local_gateway": False,
        },
    )
    workspace = SessionHubWorkspace(config)
    await workspace.start()

    status = workspace.get_status()
    assert status["running"] is True, "Workspace not reporting as running"
    assert status["thinker_enabled"] is False, "Thinker should be disabled"

    workspace.state.register_agent("alpha", name="Alpha")
    workspace.state.propose_topic("alpha", title="Clean water")

    await workspace.stop()
    return config

def test_workspace_lifecycle():
    """Test starting and stopping the workspace persists state."""
    print("⚙️ Testing Workspace Lifecycle...")

    temp_dir = Path(tempfile.mkdtemp())

    try:
        config = asyncio.run(_workspace_lifecycle(temp_dir))

        state_file = Path(config.get_data_path(config.persistence.state_file))
        assert state_file.exists(), "Snapshot not written on stop"

        from session_hub.core.persistence import SnapshotStore
        from session_hub.core.session_state import SessionState

        restored = SessionState(store=SnapshotStore(str(state_file)))
        assert restored.load(), "Failed to load snapshot"
        assert restored.topics[0]["title"] == "Clean water", "Topic not restored"
        assert "alpha" in restored.agent_state, "Agent not restored"

        print("  ✓ Workspace start/stop")
        print("  ✓ Snapshot on stop")
        print("  ✓ Restore on start")

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

def test_configuration():
    """Test configuration system."""
    print("⚙️ Testing Configuration...")

    from session_hub.utils.config import SessionHubConfig

    # Test default configuration
    config = SessionHubConfig()
    assert config.data_dir == "./data", f"Default data_dir mismatch: {config.data_dir}"
    assert config.server.port == 3101, f"Default port mismatch: {config.server.port}"
    assert config.persistence.state_file == "stream-state.json", "State file mismatch"

    print("  ✓ Default configuration")

def main():
    """Run all tests."""
    print("🧪 Session Hub - Basic Functionality Tests")
    print("=" * 60)

    try:
        test_session_state()
        test_workspace_lifecycle()
        test_configuration()

        print("\n" + "=" * 60)
        print("🎉 All tests passed! Session Hub is working correctly.")

    except Exception as e:
        print(f"\n❌ Test failed: {e}")
        import traceback
        traceback.print_exc()
        return False

    return True

if __name__ == "__main__":
    success = main()
    exit(0 if success else 1)
