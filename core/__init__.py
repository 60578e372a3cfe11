"""core/ -- Kernel: configuration shared by auth/ and api/.

Layer rule: core/ imports only stdlib + third-party libraries.
"""
