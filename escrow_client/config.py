from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    env: str = "development"

    # Network
    stellar_network: str = "testnet"  # "testnet" or "mainnet"
    soroban_rpc_url: str = ""  # Auto-set from network if empty
    horizon_url: str = ""  # Auto-set from network if empty
    http_timeout_seconds: float = 10.0

    # Escrow contract
    escrow_contract_id: str = "CCCG5JBZLW2CGYE62OWHM3VPKO3B6GCKUN2KIXG6T644BOW7PAM6LOKJ"
    asset_contract_id: str = "CBIELTK6YBZJU5UP2WWQEUCYKLPU6AUNZ2BQ4WWFEIE3USCIHMXQDAMA"  # USDC SAC
    asset_code: str = "USDC"
    asset_issuer: str = "GBBD47IF6LWK7P7MDEVSCWR7DPUWV3NY3DTQEVFL4NAT4AQH3ZLLFLA5"
    asset_decimals: int = 7

    # Used as the transaction source for get_* queries when no identity is connected
    read_only_source_account: str = "GDXK7EYVBXTITLBW2ZCODJW3B7VTVCNNNWDDEHKJ7Y67TZVW5VKRRMU6"

    # Transaction building
    query_base_fee: int = 1000
    action_base_fee: int = 10000
    tx_timeout_seconds: int = 30
    default_deadline_days: int = 7

    # Settlement: "fixed_delay" sleeps settle_delay_seconds, "poll" checks the hash
    confirmation_mode: str = "fixed_delay"
    settle_delay_seconds: float = 3.0
    confirmation_max_attempts: int = 10
    confirmation_initial_interval_seconds: float = 1.0
    confirmation_backoff: float = 1.5
    confirmation_max_interval_seconds: float = 8.0

    # Balance polling
    balance_poll_interval_seconds: float = 10.0

    # Notifications
    notification_dismiss_seconds: float = 10.0

    # Local signer for the HTTP surface. Leave empty to disable actions.
    signer_secret_key: str = ""  # ⚠️ Stellar secret seed (S...), never commit

    explorer_url: str = ""  # Auto-set from network if empty

    @property
    def resolved_rpc_url(self) -> str:
        if self.soroban_rpc_url:
            return self.soroban_rpc_url
        return {
            "testnet": "https://soroban-testnet.stellar.org:443",
            "mainnet": "https://soroban-rpc.mainnet.stellar.gateway.fm",
        }[self.stellar_network]

    @property
    def resolved_horizon_url(self) -> str:
        if self.horizon_url:
            return self.horizon_url
        return {
            "testnet": "https://horizon-testnet.stellar.org",
            "mainnet": "https://horizon.stellar.org",
        }[self.stellar_network]

    @property
    def network_passphrase(self) -> str:
        return {
            "testnet": "Test SDF Network ; September 2015",
            "mainnet": "Public Global Stellar Network ; September 2015",
        }[self.stellar_network]

    @property
    def resolved_explorer_url(self) -> str:
        if self.explorer_url:
            return self.explorer_url
        return {
            "testnet": "https://stellar.expert/explorer/testnet",
            "mainnet": "https://stellar.expert/explorer/public",
        }[self.stellar_network]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
