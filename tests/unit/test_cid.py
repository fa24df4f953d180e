from recordvault.storage.cid import compute_raw_cid, is_valid_cid

CIDV0 = "QmYwAPJzv5CZsnA625s3Xf2nemtYgPpHdWEz79ojWnPbdG"


class TestComputeRawCid:
    def test_empty_input_matches_known_cid(self) -> None:
        assert compute_raw_cid(b"") == "bafkreihdwdcefgh4dqkjv67uzcmw7ojee6xedzdetojuzjevtenxquvyku"

    def test_is_deterministic(self) -> None:
        assert compute_raw_cid(b"ciphertext") == compute_raw_cid(b"ciphertext")

    def test_differs_per_content(self) -> None:
        assert compute_raw_cid(b"a") != compute_raw_cid(b"b")

    def test_result_is_valid_cid(self) -> None:
        assert is_valid_cid(compute_raw_cid(b"anything"))


class TestIsValidCid:
    def test_accepts_cidv0(self) -> None:
        assert is_valid_cid(CIDV0)

    def test_accepts_surrounding_whitespace(self) -> None:
        assert is_valid_cid(f"  {CIDV0}\n")

    def test_rejects_empty(self) -> None:
        assert not is_valid_cid("")

    def test_rejects_truncated_cidv0(self) -> None:
        assert not is_valid_cid(CIDV0[:-1])

    def test_rejects_uppercase_base32(self) -> None:
        assert not is_valid_cid("BAFKREIHDWDCEFGH4DQKJV67UZCMW7OJEE6XEDZDETOJUZJEVTENXQUVYKU")

    def test_rejects_overlong_value(self) -> None:
        assert not is_valid_cid("b" + "a" * 200)
