# Service layer for the arm commander
# - device_client:      aiohttp client for the device's /status and /setServo API
# - dispatcher:         per-servo cancellable setServo dispatch
# - connection_manager: connect/disconnect state machine and status polling
# - mock_device:        in-memory aiohttp stand-in for the device
