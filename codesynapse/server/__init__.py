"""
Client session handling and the push channel contract.
"""
