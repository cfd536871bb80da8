"""
Pure reconciliation logic.

- request_builder: requests to submit and requests implied by past operations
- matcher: selection of the operation a resource tracks
- status: projection of an operation onto resource status
- storage: storage provider detection and credential checks
- validation: resource spec checks done before any Icarus call

Import directly from submodules.
"""
