"""Job lifecycle, worker loop and the public job service."""
