"""HTTP routers over the control plane."""
