"""Tests for filename-based High/Low variant classification."""

import pytest

from classifier import (
    LoraVariantClassifier,
    VariantLabel,
    build_normalized_key,
    classify,
    classify_names,
    detect_variant_label,
    find_bounded,
    is_version_token,
    normalize_source,
    remove_variant_segments,
    tokenize,
)
from merger import LoraSeed

HIGH = VariantLabel.HIGH
LOW = VariantLabel.LOW

CLASSIFICATION_SAMPLES = [
    ("wriggling_t2v_high_e100.safetensors", "wrigglingt2v", HIGH),
    ("wriggling_t2v_low_e100.safetensors", "wrigglingt2v", LOW),
    ("WANTT2VHIGHNOISEJIGGLE", "wantt2vjiggle", HIGH),
    ("WANTT2VLOWNOISEJIGGLE", "wantt2vjiggle", LOW),
    ("Pump_wan22_e20_high.safetensors", "pumpwan22", HIGH),
    ("Pump_wan22_e20_low.safetensors", "pumpwan22", LOW),
    ("scifi_wan_low_30 (1).safetensors", "scifiwan", LOW),
    ("scifi_wan_high_30 (1).safetensors", "scifiwan", HIGH),
    ("wriggling_i2v_high_e010.safetensors", "wrigglingi2v", HIGH),
    ("wriggling_i2v_low_e020.safetensors", "wrigglingi2v", LOW),
    ("wan22-f4c3spl4sh-100epoc-high-k3nk.safetensors", "wan22f4c3spl4shk3nk", HIGH),
    ("wan22-f4c3spl4sh-154epoc-low-k3nk.safetensors", "wan22f4c3spl4shk3nk", LOW),
    ("model_HN.safetensors", "model", HIGH),
    ("model_LN.safetensors", "model", LOW),
    ("WAN-2.2-I2V-BPlay-HIGH-v1.safetensors", "wan22i2vbplay", HIGH),
    ("WAN-2.2-I2V-BPlay-LOW-v1.safetensors", "wan22i2vbplay", LOW),
    ("WAN-2.2-T2V-oggy Style-HIGH 14B.safetensors", "wan22t2voggystyle", HIGH),
    ("WAN-2.2-T2V-oggy Style-LOW 14B.safetensors", "wan22t2voggystyle", LOW),
    ("WAN-2.2-T2V-cial-HIGH 14B.safetensors", "wan22t2vcial", HIGH),
    ("WAN-2.2-T2V-cial-LOW 14B.safetensors", "wan22t2vcial", LOW),
    ("CassHamadaWan2.2HighNoise.safetensors", "casshamadawan2", HIGH),
    ("CassHamadaWan2.2HighNoise", "casshamadawan2", HIGH),
    ("CassHamadaWan2.2LowNoise.safetensors", "casshamadawan2", LOW),
    ("CassHamadaWan2.2LowNoise", "casshamadawan2", LOW),
    ("AAG_MuscleMommyH_high_noise.safetensors", "aagmusclemommy", HIGH),
    ("AAG_MuscleMommyL_low_noise.safetensors", "aagmusclemommy", LOW),
    ("wan2.2_highnoise_cshot_v.1.0.safetensors", "wan22cshot", HIGH),
    ("wan2.2_lownoise_cshot_v1.0.safetensors", "wan22cshot", LOW),
    ("WAN-2.2-I2V-BPlay-HIGH-v1", "wan22i2vbplay", HIGH),
    ("WAN-2.2-I2V-BPlay-LOW-v1", "wan22i2vbplay", LOW),
    ("Wan2.2 - I2V - King Machine - HIGH 14B.safetensors", "wan22i2vkingmachine", HIGH),
    ("Wan2.2 - I2V - King Machine - LOW 14B.safetensors", "wan22i2vkingmachine", LOW),
    ("WAN_2.2_mix_HIGH (Final).safetensors", "wan22mixfinal", HIGH),
    ("WAN_2.2_mix_LOW (Final).safetensors", "wan22mixfinal", LOW),
    ("wan - custom - LN 15B.safetensors", "wancustom", LOW),
    ("wan - custom - HN 15B.safetensors", "wancustom", HIGH),
    ("Another Model (LOW Noise).safetensors", "anothermodel", LOW),
    ("Another Model (HIGH Noise).safetensors", "anothermodel", HIGH),
]


@pytest.mark.parametrize("file_name,expected_key,expected_label", CLASSIFICATION_SAMPLES)
def test_classify_returns_expected_key_and_label(file_name, expected_key, expected_label):
    result = classify(LoraSeed(file_name=file_name))
    assert result.normalized_key == expected_key
    assert result.variant_label is expected_label


class TestClassify:
    def test_distinct_wan_downloads_keep_distinct_keys(self):
        inputs = [
            "wan2.2_5b_c0wg1rl_72_000002500.safetensors",
            "wan2.2_5b_cuflation_000003750.safetensors",
            "wan2.2_5b_rsc_000002500.safetensors",
            "wan2.1-i2v-480p-rsacp.safetensors",
            "Wan2.1_i2v_cuinmouth_v1_7epo.safetensors",
        ]
        keys = [classify(LoraSeed(file_name=name)).normalized_key for name in inputs]
        assert len(set(keys)) == len(keys)
        assert keys[0] == "wan22c0wg1rl"
        assert keys[3] == "wan21i2vrsacp"

    @pytest.mark.parametrize("missing", [None, "", "   "])
    def test_falls_back_to_version_name_when_file_name_missing(self, missing):
        high = classify(LoraSeed(file_name=missing, version_name="CassHamadaWan2.2HighNoise"))
        low = classify(LoraSeed(file_name=missing, version_name="CassHamadaWan2.2LowNoise"))

        assert high.variant_label is HIGH
        assert low.variant_label is LOW
        assert high.normalized_key == low.normalized_key == "casshamadawan2"

    def test_only_noise_marker_gives_empty_key(self):
        result = classify(LoraSeed(file_name="HighNoise"))
        assert result.normalized_key == ""
        assert result.variant_label is HIGH

    def test_snapshot_protects_against_regression(self):
        samples = {
            "wan2.2_highnoise_cshot_v1.0 (Final Copy).safetensors": "wan22cshot0finalcopy|High",
            "wan2.2-lownoise-cshot-v1.0-final.safetensors": "wan22cshot0final|Low",
            "WAN2.2_FINAL-HIGHNoise   .safetensors": "wan22final|High",
            "WAN2.2_FINAL-LowNoise   .safetensors": "wan22fina|Low",
            "Some Random Model.safetensors": "somerandommodel|",
        }
        snapshot = {}
        for sample in samples:
            result = classify(LoraSeed(file_name=sample))
            snapshot[sample] = f"{result.normalized_key}|{result.label_text}"
        assert snapshot == samples

    def test_uses_version_variant_when_file_name_lacks_variant(self):
        result = classify(LoraSeed(file_name="wan_cshot_v1.safetensors",
                                   version_name="wan2.2_highnoise_cshot_v1.0"))
        assert result.normalized_key == "wancshot"
        assert result.variant_label is HIGH

    def test_primary_result_wins_when_complete(self):
        result = classify(LoraSeed(file_name="model_HN.safetensors", version_name="other_LN"))
        assert result.normalized_key == "model"
        assert result.variant_label is HIGH

    def test_missing_everything_degrades_to_empty(self):
        result = classify(LoraSeed())
        assert result.normalized_key == ""
        assert result.variant_label is None

    def test_classify_none_raises(self):
        with pytest.raises(ValueError):
            classify(None)

    def test_classification_is_deterministic(self):
        seed = LoraSeed(file_name="WAN-2.2-I2V-BPlay-HIGH-v1.safetensors")
        results = {classify(seed) for _ in range(5)}
        assert len(results) == 1

    def test_classify_names_matches_seed_classification(self):
        seed = LoraSeed(file_name="model_LN.safetensors", version_name="x")
        assert classify_names(seed.file_name, seed.version_name) == classify(seed)


class TestCachedClassifier:
    def test_cache_hits_return_same_result(self):
        classifier = LoraVariantClassifier(cache_size=8)
        seed = LoraSeed(file_name="model_HN.safetensors", model_id="1")
        first = classifier.classify(seed)
        second = classifier.classify(LoraSeed(file_name="model_HN.safetensors", model_id="2"))

        assert first == second
        assert classifier.cache_info().hits == 1

    def test_cache_disabled_reports_no_info(self):
        assert LoraVariantClassifier().cache_info() is None


class TestNormalizeSource:
    @pytest.mark.parametrize("value", [None, "", "   \t"])
    def test_blank_is_none(self, value):
        assert normalize_source(value) is None

    @pytest.mark.parametrize("value,expected", [
        ("model.safetensors", "model"),
        ("  model.SAFETENSORS  ", "model"),
        ("model.pt", "model"),
        ("model.ckpt", "model"),
        ("model.bin", "model"),
        ("loras/wan/model.safetensors", "model"),
        ("C:\\loras\\wan\\model_HN.safetensors", "model_HN"),
        ("model.gguf", "model.gguf"),
        ("wan2.2_cshot", "wan2.2_cshot"),
    ])
    def test_strips_known_extensions(self, value, expected):
        assert normalize_source(value) == expected

    def test_extension_only_keeps_original(self):
        assert normalize_source(".safetensors") == ".safetensors"


class TestTokenize:
    def test_splits_on_separators(self):
        assert tokenize("WAN-2.2_I2V (Final) [x]{y}") == ["WAN", "2", "2", "I2V", "Final", "x", "y"]

    def test_keeps_duplicates_and_case(self):
        assert tokenize("a__A  a") == ["a", "A", "a"]

    def test_empty_string(self):
        assert tokenize("") == []


class TestDetectVariantLabel:
    def test_longer_alias_wins_over_short_alias(self):
        # "ln" is bounded too, but highnoise is tried first
        assert detect_variant_label("ln_highnoise") is HIGH

    def test_raw_scan_requires_non_alphanumeric_neighbours(self):
        assert detect_variant_label("highlander") is None

    def test_digit_trimmed_token(self):
        assert detect_variant_label("model_2high") is HIGH

    def test_embedded_in_mixed_case_run(self):
        assert detect_variant_label("WANTT2VLOWNOISEJIGGLE") is LOW

    def test_embedded_rejects_lowercase_neighbours(self):
        assert detect_variant_label("shallow_follow") is None

    def test_find_bounded_yields_all_matches(self):
        starts = list(find_bounded("high-HIGH_xhigh", "high", lambda c: c is None or not c.isalnum()))
        assert starts == [0, 5]


class TestKeyBuilder:
    def test_remove_variant_segments(self):
        assert remove_variant_segments("model_high_noise_v1") == "model__v1"
        assert remove_variant_segments("highlander") == "highlander"

    @pytest.mark.parametrize("token", ["v", "v1", "V12", "ver2", "version", "e100", "epoch10"])
    def test_version_tokens(self, token):
        assert is_version_token(token)

    @pytest.mark.parametrize("token", ["vae", "e2e", "wan", "", "eval"])
    def test_non_version_tokens(self, token):
        assert not is_version_token(token)

    def test_leading_digits_kept_before_title_text(self):
        assert build_normalized_key("2_fast_furious_000100", None) == "2fastfurious"

    def test_superscript_digit_token_dropped(self):
        assert build_normalized_key("2²_title", None) == "title"

    def test_superscript_digit_is_a_segment_boundary(self):
        assert remove_variant_segments("model_high²") == "model_²"

    def test_trailing_epoch_counters_dropped(self):
        assert build_normalized_key("model_72_000002500", None) == "model"

    def test_lowercase_suffix_is_not_stripped(self):
        assert build_normalized_key("splash_high", HIGH) == "splash"
        assert build_normalized_key("MuscleMommyH", HIGH) == "musclemommy"

    def test_suffix_after_digit_is_not_stripped(self):
        assert build_normalized_key("Model2H", HIGH) == "model2h"

    def test_no_label_keeps_tokens_verbatim(self):
        assert build_normalized_key("John_Highway", None) == "johnhighway"
