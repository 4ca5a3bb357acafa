"""Key derivation: mnemonic, BIP32, paths, addresses and the wallet service."""
