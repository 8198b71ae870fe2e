# Infrastructure clients
from clients.vault_client import (
    VaultClient,
    get_database_url,
    get_valkey_url,
    get_passkey_config,
    get_session_secret,
)
from clients.record_store import (
    RecordStore,
    RecordStoreError,
    StoreConnectionError,
    DuplicateRecordError,
)
from clients.valkey_client import ValkeyClient
from clients.passkey_client import PasskeyProviderClient, PasskeyProviderError
