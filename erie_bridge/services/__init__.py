"""
Erie Bridge Services

1. Erie Service - vendor session, device resolution, telemetry
2. Ledger Service - reset history and usage baseline
3. Bus Service - MQTT transport, command dispatch, discovery
"""
