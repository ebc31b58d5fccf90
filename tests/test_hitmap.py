from conftest import make_registry, message
from pxwriter.config.schemas import WriterCfg
from pxwriter.pipelines.core import WriterModule
from pxwriter.vis.hitmap import accumulate_hitmaps, save_hitmap_png


def test_hitmap_png(tmp_path):
    module = WriterModule(WriterCfg(geometry_file=None), make_registry(), output_dir=tmp_path)
    module.initialize()
    module.run(1, [message("D1", (3, 2, 1.0), (3, 2, 1.0)), message("D2", (0, 4, 1.0))])
    module.run(2, [message("D1", (1, 1, 1.0))])
    summary = module.finalize()

    maps = accumulate_hitmaps(str(summary.event_file))
    assert sorted(maps) == [0, 1]
    assert maps[0][2, 3] == 2 and maps[0][1, 1] == 1
    assert maps[1].shape == (5, 1)

    out = save_hitmap_png(str(summary.event_file), out_png=str(tmp_path / "hm.png"))
    assert (tmp_path / "hm.png").exists() and out.endswith("hm.png")
