"""
OpenBook v1 / Serum v3 market access: layouts, instruction encoding,
RPC gateway and the order-book client.
"""
