from codesynapse.scanner.ignore_rules import IgnoreRules


ROOT = "/work/project"


class TestIgnoreRules:

    def test_normalize(self):
        assert IgnoreRules.normalize("**/dist/**") == "dist"
        assert IgnoreRules.normalize("**/generated/**") == "generated"
        assert IgnoreRules.normalize("node_modules/") == "node_modules"
        assert IgnoreRules.normalize("src\\gen") == "src/gen"
        assert IgnoreRules.normalize("  *.log ") == "*.log"

    def test_patterns_are_deduplicated(self):
        rules = IgnoreRules(ROOT, ["dist", "**/dist/**", "", "/dist/"])

        assert rules.patterns == ["dist"]

    def test_component_match_at_any_depth(self):
        rules = IgnoreRules(ROOT, ["node_modules"])

        assert rules.is_ignored(f"{ROOT}/node_modules")
        assert rules.is_ignored(f"{ROOT}/node_modules/react/index.js")
        assert rules.is_ignored(f"{ROOT}/packages/app/node_modules/x.js")
        assert not rules.is_ignored(f"{ROOT}/src/node_modules_helper.js")

    def test_glob_components(self):
        rules = IgnoreRules(ROOT, ["*.log", ".DS_Store"])

        assert rules.is_ignored(f"{ROOT}/logs/server.log")
        assert rules.is_ignored(f"{ROOT}/src/.DS_Store")
        assert not rules.is_ignored(f"{ROOT}/src/log.ts")

    def test_prefix_match(self):
        rules = IgnoreRules(ROOT, ["src/generated"])

        assert rules.is_ignored(f"{ROOT}/src/generated/api.ts")
        assert not rules.is_ignored(f"{ROOT}/lib/generated/api.ts")
        assert not rules.is_ignored(f"{ROOT}/src/app.ts")

    def test_root_itself_is_not_ignored(self):
        rules = IgnoreRules(ROOT, ["*"])

        assert not rules.is_ignored(ROOT)

    def test_outside_root_is_ignored(self):
        rules = IgnoreRules(ROOT, [])

        assert rules.is_ignored("/work/other/a.ts")
        assert rules.is_ignored("/work")
        assert not rules.is_ignored(f"{ROOT}/a.ts")
