RECORD_REGISTRY_ABI: list[dict[str, object]] = [
    {
        "type": "function",
        "name": "addRecord",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "patient", "type": "address"},
            {"name": "ipfsHash", "type": "string"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "getPatientRecords",
        "stateMutability": "view",
        "inputs": [{"name": "patient", "type": "address"}],
        "outputs": [{"name": "", "type": "string[]"}],
    },
    {
        "type": "function",
        "name": "getRecordCount",
        "stateMutability": "view",
        "inputs": [{"name": "patient", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "event",
        "name": "RecordAdded",
        "anonymous": False,
        "inputs": [
            {"name": "patient", "type": "address", "indexed": True},
            {"name": "hospital", "type": "address", "indexed": True},
            {"name": "ipfsHash", "type": "string", "indexed": False},
            {"name": "timestamp", "type": "uint256", "indexed": False},
        ],
    },
]
