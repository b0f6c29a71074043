"""指标因子层：纯函数指标库 + 面向 DataFrame 的因子封装。"""
