"""
vSAN Master Lab — The Control Plane

Hands-on training simulator of a hyper-converged vSAN cluster. The control
plane is the single source of truth for lab state.
Responsibilities:
- Guided cluster setup (hosts, vmkernel traffic, disk claims, vSAN enable)
- Storage-policy-driven VM component placement
- Failure injection under the FTT admission guard
- Recovery resync, maintenance evacuation, rolling upgrades
- DRS rebalancing and capacity accounting
"""
