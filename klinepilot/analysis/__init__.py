"""回测结果分析：统计、报表与图表。"""
