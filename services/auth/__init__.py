from .gateway import AuthGateway, FederatedChallenge

__all__ = ["AuthGateway", "FederatedChallenge"]
